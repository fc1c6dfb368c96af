from fastapi import FastAPI

from notesync.api import notes
from notesync.config import configure_logging

configure_logging()

app = FastAPI(title="notesync remote store")
app.include_router(notes.router)


@app.get("/health")
def health():
    return {"ok": True}

# !!!
# TO RUN THE SERVER: uvicorn app:app --host 0.0.0.0 --port 8000
# !!!

from __future__ import annotations

import logging
from dataclasses import asdict
from functools import lru_cache
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from songprint.audio import decode_bytes
from songprint.config import DB_PATH
from songprint.errors import DecodeError, InsufficientSignal, SongprintError, StorageError
from songprint.log import log_detail, log_section, log_success, setup_logging
from songprint.recognizer import LandmarkRecognizer
from songprint.store import SQLiteFingerprintStore
from songprint.types import Song

# -----------------------------
# Logging Configuration
# -----------------------------

setup_logging()
log = logging.getLogger("songprint.app")

# -----------------------------
# App Initialization
# -----------------------------

log_section("🎵 songprint API Server")

app = FastAPI(title="songprint API", version="1.0")

ERROR_STATUS = {
    DecodeError: 400,
    InsufficientSignal: 422,
    StorageError: 503,
}


@lru_cache(maxsize=1)
def get_recognizer() -> LandmarkRecognizer:
    """Recognizer over the SQLite store at ``SONGPRINT_DB_PATH``, opened on first use."""
    log_detail("Database path", DB_PATH)
    recognizer = LandmarkRecognizer(SQLiteFingerprintStore(DB_PATH))
    log_success(f"Recognizer ready ({recognizer.num_indexed_songs} songs indexed)")
    return recognizer


def _http_error(exc: SongprintError) -> HTTPException:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


async def _read_upload(file: UploadFile):
    content = await file.read()
    if not content:
        log.warning("Empty file upload rejected")
        raise HTTPException(status_code=400, detail="Empty upload.")
    log_detail("Filename", file.filename or "unknown")
    log_detail("File size", f"{len(content) / 1024:.1f} KB")
    return decode_bytes(content)


def _song_json(song: Song) -> Dict[str, Any]:
    return {"id": song.id, "title": song.title, "created_at": song.created_at.isoformat()}


# -----------------------------
# API endpoints
# -----------------------------
@app.get("/health")
def health() -> Dict[str, str]:
    log.debug("Health check requested")
    return {"status": "ok"}


@app.get("/songs")
def list_songs(recognizer: LandmarkRecognizer = Depends(get_recognizer)) -> List[Dict[str, Any]]:
    try:
        return [_song_json(s) for s in recognizer.store.list_songs()]
    except SongprintError as e:
        raise _http_error(e)


@app.post("/songs", status_code=201)
async def add_song(
    title: str = Form(...),
    file: UploadFile = File(...),
    recognizer: LandmarkRecognizer = Depends(get_recognizer),
) -> JSONResponse:
    log.info(f"📥 New song upload: '{title}'")
    try:
        samples, sr = await _read_upload(file)
        song = recognizer.add_song(title, samples, sr)
        fingerprints = recognizer.store.count_fingerprints(song.id)
    except SongprintError as e:
        log.error(f"Ingestion failed: {e}")
        raise _http_error(e)

    log_success(f"Indexed '{song.title}' as song {song.id} ({fingerprints} fingerprints)")
    return JSONResponse({**_song_json(song), "fingerprints": fingerprints}, status_code=201)


@app.delete("/songs/{song_id}")
def delete_song(song_id: int, recognizer: LandmarkRecognizer = Depends(get_recognizer)) -> Dict[str, int]:
    try:
        deleted = recognizer.store.delete_song(song_id)
    except SongprintError as e:
        raise _http_error(e)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"No song with id {song_id}")
    log.info(f"🗑️  Deleted song {song_id}")
    return {"deleted": song_id}


@app.post("/recognize")
async def recognize(
    file: UploadFile = File(...),
    recognizer: LandmarkRecognizer = Depends(get_recognizer),
) -> JSONResponse:
    log.info("🎧 New recognition request received")
    try:
        samples, sr = await _read_upload(file)
        match, metadata = recognizer.recognize(samples, sr)
    except SongprintError as e:
        log.error(f"Recognition failed: {e}")
        raise _http_error(e)

    if match is not None:
        log_success(f"Match found: '{metadata['title']}' (confidence: {match.confidence:.2%})")
        body = {**asdict(match), "title": metadata["title"]}
    else:
        log.warning("No match found")
        body = None

    return JSONResponse(
        {
            "match": body,
            "candidates": metadata["candidates"],
            "num_query_hashes": metadata["num_query_hashes"],
            "total_time": metadata["total_time"],
        }
    )

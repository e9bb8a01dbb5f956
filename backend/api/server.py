import json
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, File, HTTPException, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from librarian.config import LibrarianConfig, get_logger
from librarian.github.webhook import parse_payload, verify_signature
from librarian.publish.workflow import PublishRequest
from librarian.services import LibraryServices
from librarian.sync.error_tracker import PublishError

# Under the librarian logger tree so records go through its JSON handlers
logger = get_logger('librarian.server')

config = LibrarianConfig.from_environment()
services = LibraryServices(config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Opens the GitHub session and starts the metadata sweep; flushes on shutdown
    async with services:
        yield


app = FastAPI(openapi_url=None, redirect_slashes=False, lifespan=lifespan)

# Enable CORS for the configured front-end origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.origin] if config.origin else [],
    allow_methods=["GET", "POST"],
)

@app.post("/webhook")
async def webhook_handler(request: Request, background_tasks: BackgroundTasks) -> Response:
    """Receive a push delivery; main-branch commits are reconciled after the response is sent."""
    body = await request.body()
    if not verify_signature(config.secret, body, request.headers.get('x-hub-signature')):
        return Response(status_code=401)

    try:
        payload = parse_payload(body, request.headers.get('content-type'))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid payload: {e}")

    background_tasks.add_task(services.engine.process_payload, payload)
    return Response(status_code=200)

@app.post("/publish/{path:path}")
async def publish_handler(
    path: str,
    jsonFile: UploadFile = File(...),
    pngFile: Optional[UploadFile] = File(None),
) -> Dict[str, str]:
    """Publish an uploaded item to the content repository.
    Args:
        path (str): Collection path the item is published into
        jsonFile (UploadFile): The item's JSON document
        pngFile (UploadFile): Optional companion image
    Returns:
        Dict[str, str]: The pull request URL under "url"
    """
    try:
        json_content = json.loads(await jsonFile.read())
        image_bytes = await pngFile.read() if pngFile else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid JSON file: {e}")
    if not isinstance(json_content, dict):
        raise HTTPException(status_code=400, detail="JSON file must hold an object")

    request = PublishRequest(collection_path=path, json_content=json_content, image_bytes=image_bytes or None)
    try:
        url = await services.publisher.publish(path, request)
    except PublishError as e:
        logger.error(e.message)
        raise HTTPException(status_code=500, detail="Publishing failed")
    return {"url": url}

@app.get("/versions/{path:path}")
async def versions_handler(path: str) -> List[Dict[str, str]]:
    """Version history of a content file; also recorded in the collection's metadata."""
    versions = await services.history.refresh_versions(services.store, path)
    return [v.model_dump() for v in versions]

@app.get("/version/{sha}/{path:path}")
async def version_handler(sha: str, path: str) -> Any:
    """Content of a file at a given revision."""
    content = await services.history.fetch_at_commit(path, sha)
    if content is None:
        raise HTTPException(status_code=404, detail=f"{path} not found at {sha}")
    if isinstance(content, bytes):
        return Response(content=content, media_type="image/png")
    return content

@app.get("/library/{path:path}")
async def library_handler(path: str) -> List[Dict[str, Any]]:
    """Metadata of every item in a collection."""
    if not path:
        raise HTTPException(status_code=400, detail="Metadata path is required")
    try:
        items = await services.store.get(path.strip('/'))
    except Exception as e:
        logger.error(f"Error in /library route: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving metadata")
    return [item.to_dict() for item in items]

# Mirrored content, served last so the API routes take precedence
app.mount("/", StaticFiles(directory=config.static_path, check_dir=False), name="static")


# Run the server with:
# uvicorn backend.api.server:app --reload

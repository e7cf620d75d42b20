"""HTTP API (FastAPI) for menu extraction, generation, and cache admin."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from fastapi import APIRouter, FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from .config import AppConfig, load_config
from .menu import ParsedMenu
from .service import MenuInputError, MenuService, NoMenuTextError
from .vision import OCRError

log = logging.getLogger(__name__)

_ALLOWED_UPLOADS = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
}


class ValidateRequest(BaseModel):
    menu_text: str | None = None


class MenuItemModel(BaseModel):
    type: str = "item"
    text: str = ""


class SectionModel(BaseModel):
    title: str | None = None
    content: str = ""
    items: list[MenuItemModel] = Field(default_factory=list)


class MenuModel(BaseModel):
    header: str = ""
    sections: dict[str, SectionModel] = Field(default_factory=dict)


class GenerateRequest(BaseModel):
    parsed_menu: MenuModel | None = None
    menu_date: str | None = None


def _safe_file(directory: Path, filename: str, suffix: str) -> Path:
    if Path(filename).name != filename or not filename.endswith(suffix):
        raise HTTPException(status_code=400, detail="Invalid file type")
    path = directory / filename
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return path


def create_app(
    config: AppConfig | None = None, service: MenuService | None = None
) -> FastAPI:
    config = config or load_config()
    service = service or MenuService(config)
    max_upload = config.server.max_upload_mb * 1024 * 1024

    app = FastAPI(title="Care Home Menu Generator", version="1.0.0")
    app.state.service = service

    menu = APIRouter(prefix="/api/menu")
    cache = APIRouter(prefix="/api/cache")
    files = APIRouter(prefix="/api/files")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    # ─── Menu ────────────────────────────────────────────────────────────────
    @menu.post("/extract")
    async def extract(
        menu_image: UploadFile | None = File(None),
        menu_text: str | None = Form(None),
    ):
        uploaded = None
        try:
            if menu_image is not None and menu_image.filename:
                ext = Path(menu_image.filename).suffix.lower()
                if (
                    ext not in _ALLOWED_UPLOADS
                    or menu_image.content_type not in _ALLOWED_UPLOADS.values()
                ):
                    raise HTTPException(
                        status_code=400,
                        detail="Only image files are allowed (JPEG, PNG, GIF)",
                    )
                data = await menu_image.read()
                if not data:
                    raise HTTPException(status_code=400, detail="Empty upload")
                if len(data) > max_upload:
                    raise HTTPException(
                        status_code=413,
                        detail=f"File exceeds {config.server.max_upload_mb} MB limit",
                    )
                upload_dir = config.storage.upload_dir
                upload_dir.mkdir(parents=True, exist_ok=True)
                path = upload_dir / f"{uuid.uuid4()}{ext}"
                path.write_bytes(data)
                uploaded = {"filename": path.name, "path": str(path), "size": len(data)}
                log.info("Processing uploaded menu image %s", path.name)
                result = await service.extract(image_path=path)
            else:
                result = await service.extract(text=menu_text)
        except NoMenuTextError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except MenuInputError:
            raise HTTPException(
                status_code=400,
                detail="Either menu_image file or menu_text is required",
            )
        except OCRError as e:
            raise HTTPException(status_code=502, detail=str(e))

        return {"success": True, **result.to_dict(), "uploaded_file": uploaded}

    @menu.post("/validate")
    def validate(body: ValidateRequest):
        try:
            result = service.validate_text(body.menu_text)
        except MenuInputError:
            raise HTTPException(status_code=400, detail="menu_text is required")
        return {
            "success": True,
            "parsed_menu": result.menu.to_dict(),
            "validation": result.report.to_dict(),
        }

    @menu.post("/generate")
    async def generate(body: GenerateRequest):
        if body.parsed_menu is None:
            raise HTTPException(status_code=400, detail="parsed_menu is required")
        parsed = ParsedMenu.from_dict(body.parsed_menu.model_dump())
        result = await service.generate(parsed, menu_date=body.menu_date)
        return {"success": True, **result.to_dict()}

    @menu.get("/history")
    def history(limit: int = Query(10, ge=1, le=100)):
        return {"success": True, "history": service.history(limit)}

    @menu.get("/stats")
    def stats():
        return {"success": True, "stats": service.statistics()}

    # ─── Cache admin ─────────────────────────────────────────────────────────
    @cache.get("/stats")
    def cache_stats():
        return {"success": True, "stats": service.cache.stats()}

    @cache.get("/list")
    def cache_list():
        return {"success": True, "cached": service.cache.list_entries()}

    @cache.delete("/clear")
    def cache_clear():
        count = service.cache.clear()
        return {
            "success": True,
            "message": "Cache cleared successfully",
            "deleted_count": count,
        }

    @cache.delete("/{key}")
    def cache_delete(key: str):
        result = service.cache.delete(key)
        if not result.found:
            raise HTTPException(status_code=404, detail="Cached image not found")
        return {"success": True, "message": "Cached image deleted successfully"}

    # ─── Files ───────────────────────────────────────────────────────────────
    @files.get("/cache/{filename}")
    def cache_file(filename: str):
        path = _safe_file(config.storage.cache_dir, filename, ".png")
        return FileResponse(
            str(path),
            media_type="image/png",
            headers={"Cache-Control": "public, max-age=31536000"},
        )

    @files.get("/outputs/{filename}")
    def output_file(filename: str):
        path = _safe_file(config.storage.output_dir, filename, ".pdf")
        return FileResponse(str(path), media_type="application/pdf", filename=filename)

    app.include_router(menu)
    app.include_router(cache)
    app.include_router(files)
    return app

"""Expose the loaded configuration, without credentials, for debugging."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Request

from ..config import ServerConfig

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_config(request: Request) -> ServerConfig:
    return request.app.state.server_config


@router.get("/config")
async def config(request: Request, config: ServerConfig = Depends(_get_config)) -> dict:
    return {
        "version": request.app.version,
        "storage_backend": config.storage.backend,
        "collections": asdict(config.collections),
        "mail": {
            "backend": config.mail.backend,
            "sender": config.mail.sender,
            "credentials_configured": bool(config.mail.username and config.mail.password),
        },
        "sweep": asdict(config.sweep),
        "log_level": config.log_level,
    }

"""Application entry point for the Product Image Studio project."""

from __future__ import annotations

from typing import Optional

import gradio as gr
import uvicorn
from fastapi import FastAPI

from config.settings import AppConfig, load_config
from modules.ui.layout import build_app
from modules.utils.logging import setup_logging
from modules.web.download import build_download_router


def create_server(config: AppConfig) -> FastAPI:
    """Mount the Gradio interface and the download proxy on one FastAPI app."""
    server = FastAPI(title="Product Image Studio")
    server.include_router(build_download_router())
    demo = build_app(config)
    demo.queue()
    return gr.mount_gradio_app(server, demo, path="/")


def main(config_path: Optional[str] = None) -> None:
    """Load configuration and serve the web interface."""
    config = load_config(config_path)
    logger = setup_logging(config)
    server = create_server(config)
    port = int(config.metadata.get("server_port", 7860))
    logger.info("Starting Product Image Studio on port %d", port)
    uvicorn.run(server, host=config.metadata.get("server_host", "127.0.0.1"), port=port)


if __name__ == "__main__":
    main()

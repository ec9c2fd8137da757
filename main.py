#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Main application entry point - OpenAI to NVIDIA NIM proxy
"""

from dotenv import load_dotenv

# 加载.env文件,覆盖电脑自身环境变量
load_dotenv(override=True)

from nim_proxy.app import create_app  # noqa: E402
from nim_proxy.config import get_settings  # noqa: E402

settings = get_settings()
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        http="httptools",
        reload=False,
        log_level="info",
    )

#!/usr/bin/env python3
"""
Quick runner for Verdict Service
================================

Usage:
    python -m verdict_service.run
"""

import logging

import uvicorn

if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print("Starting Verdict Service...")
    print("API docs: http://localhost:8000/docs")
    print("Health:   http://localhost:8000/health")
    print()

    uvicorn.run(
        "verdict_service.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )

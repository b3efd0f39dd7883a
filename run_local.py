#!/usr/bin/env python
"""Local development script for running deepseek-gateway."""
import os
import uvicorn

# Local defaults; an exported DEEPSEEK_API_KEY (or one in .env) is still used
for name, value in {
    "DEBUG": "true",
    "HOST": "127.0.0.1",
    "PORT": "8787",
    "CHAT_HISTORY_BACKEND": "memory",
}.items():
    os.environ.setdefault(name, value)

if __name__ == "__main__":
    print("Starting deepseek-gateway in development mode")
    print("API: http://127.0.0.1:8787")
    print("Docs: http://127.0.0.1:8787/docs")
    print("History: in-memory (lost on restart)")
    if not os.environ.get("DEEPSEEK_API_KEY"):
        print("Warning: DEEPSEEK_API_KEY is not set, /api/chat will return 400")

    # Run with auto-reload
    uvicorn.run("main:app", host="127.0.0.1", port=8787, reload=True)

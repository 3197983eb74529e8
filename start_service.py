#!/usr/bin/env python3
"""
Development startup for the Nano Banana Friends API

Fills in local defaults, reports which upstream credentials are missing
and runs the app under uvicorn.
"""

import os
import sys

DEV_DEFAULTS = {
    "API_HOST": "0.0.0.0",
    "API_PORT": "8000",
    "API_RELOAD": "true",
    "DATABASE_URL": "sqlite:///./banana_friends.db",
    "LOG_LEVEL": "INFO",
    "LOG_FILE": "app.log",
    # MinIO stands in for Supabase storage locally
    "S3_ENDPOINT_URL": "http://localhost:9000",
    "STORAGE_ACCESS_KEY_ID": "test",
    "STORAGE_SECRET_ACCESS_KEY": "test",
    "LLM_MODEL_PATH": "Qwen/Qwen2.5-1.5B-Instruct",
}


def setup_environment():
    for key, value in DEV_DEFAULTS.items():
        if key not in os.environ:
            os.environ[key] = value
            print(f"Set {key}={value}")


def check_dependencies():
    """Import the web stack once so a broken install fails before uvicorn starts"""
    try:
        import fastapi
        import uvicorn
        import sqlalchemy
        import httpx
        import boto3
        import PIL
        import multipart
    except ImportError as e:
        print(f"❌ Missing dependency: {e}")
        print("Install with: pip install -e .")
        return False
    print("✅ Web dependencies available")
    return True


def report_credentials():
    """Print which proxies will answer 500 because their credentials are unset"""
    from banana_friends.api.endpoints import UPSTREAM_SETTINGS
    from banana_friends.config.settings import get_settings

    settings = get_settings()
    for service, names in UPSTREAM_SETTINGS.items():
        missing = [name for name, present in settings.presence(names).items() if not present]
        if missing:
            print(f"⚠️  {service}: missing {', '.join(missing)}")
        else:
            print(f"✅ {service}: configured")


def start_api_server():
    print("🚀 Starting Nano Banana Friends API...")
    import uvicorn

    uvicorn.run(
        "banana_friends.main:app",
        host=os.environ["API_HOST"],
        port=int(os.environ["API_PORT"]),
        reload=os.environ["API_RELOAD"].lower() == "true",
        log_level=os.environ["LOG_LEVEL"].lower()
    )


def main():
    print("Nano Banana Friends API")
    print("=" * 50)
    setup_environment()
    if not check_dependencies():
        sys.exit(1)
    report_credentials()
    start_api_server()


if __name__ == "__main__":
    main()

"""
FileVault - Quick Start Script
Run this to start the development server
"""

import uvicorn
from app.config import settings

if __name__ == "__main__":
    print("=" * 60)
    print("Starting FileVault API Server")
    print("=" * 60)
    print(f"Environment: {settings.ENVIRONMENT}")
    print(f"Server: http://{settings.HOST}:{settings.PORT}")
    print(f"API Docs: http://{settings.HOST}:{settings.PORT}/docs")
    print("=" * 60)
    print("\nMake sure you have:")
    print("  - PostgreSQL running")
    print("  - S3-compatible storage credentials in .env")
    print("  - APP_USERNAME / APP_PASSWORD / JWT_SECRET_KEY set")
    print("\nPress CTRL+C to stop\n")

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )

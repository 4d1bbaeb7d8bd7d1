#!/usr/bin/env python3
"""
JukeBoxd Setup and Run Script

Prepares the environment and starts the JukeBoxd API server.

Options:
    --reset   Drop every table before starting.
    --seed    Load the built-in demo albums into the database.
    --no-run  Only run the setup steps; do not start the server.
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path


def setup_environment():
    """Set up environment variables and configuration"""
    print("Setting up JukeBoxd environment...")

    db_url = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./jukeboxd.db")
    os.environ["DATABASE_URL"] = db_url
    print(f"Database URL: {db_url.split('@')[-1]}")

    if not os.getenv("JWT_SECRET_KEY"):
        print("Warning: JWT_SECRET_KEY not set; tokens will not survive a restart")

    if not os.getenv("LASTFM_API_KEY") and not os.getenv("SPOTIFY_CLIENT_ID"):
        print("No music catalog credentials found; running in demo mode")

    os.environ.setdefault("PYTHONPATH", str(Path.cwd()))


async def prepare_database(reset: bool, seed: bool):
    """Create tables, optionally dropping them first and seeding demo albums"""
    # Imported after setup_environment so DATABASE_URL is honoured
    from core.database import create_db_and_tables, drop_db_and_tables, engine
    from providers.music_catalog import MOCK_ALBUMS
    from services.album_service import AlbumService

    if reset:
        await drop_db_and_tables()
        print("Dropped all tables")

    await create_db_and_tables()
    print("Database tables ready")

    if seed:
        created = await AlbumService().seed(MOCK_ALBUMS)
        print(f"Seeded {created} demo albums")

    await engine.dispose()


def start_server():
    """Start the JukeBoxd API server"""
    port = int(os.getenv("PORT", "3001"))
    print("Starting JukeBoxd API server...")
    print(f"Server will be available at: http://localhost:{port}")
    print(f"Health check endpoint: http://localhost:{port}/health")
    print("Press Ctrl+C to stop the server")
    print("-" * 50)

    try:
        import uvicorn

        uvicorn.run(
            "main:app",
            host=os.getenv("HOST", "0.0.0.0"),
            port=port,
            reload=True,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")


def main():
    """Main setup and run function"""
    parser = argparse.ArgumentParser(description="Set up and run the JukeBoxd API")
    parser.add_argument("--reset", action="store_true", help="drop all tables first")
    parser.add_argument("--seed", action="store_true", help="load the demo albums")
    parser.add_argument("--no-run", action="store_true", help="do not start the server")
    args = parser.parse_args()

    print("JukeBoxd API - Setup and Run")
    print("=" * 40)

    script_dir = Path(__file__).parent
    os.chdir(script_dir)
    print(f"Working directory: {script_dir}")

    setup_environment()

    try:
        asyncio.run(prepare_database(args.reset, args.seed))
    except Exception as e:
        print(f"Database setup failed: {e}")
        sys.exit(1)

    if not args.no_run:
        start_server()


if __name__ == "__main__":
    main()

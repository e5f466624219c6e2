#!/usr/bin/env python3
"""
Reference Forum Store
Serves the forum-posts / forum-replies API the sync engine talks to
"""
import sys

import uvicorn

from config import DB_PATH, DEFAULT_HOST, DEFAULT_PORT, SECRET_KEY
from server import create_app


def main():
    print("Starting reference forum store...")
    print(f"Database: {DB_PATH}")
    print("Available at:")
    print(f"  - http://localhost:{DEFAULT_PORT}/forum-posts")
    print(f"  - http://localhost:{DEFAULT_PORT}/forum-replies")
    print(f"  - API docs: http://localhost:{DEFAULT_PORT}/docs")
    print()
    print("Press Ctrl+C to stop the server")

    try:
        uvicorn.run(
            create_app(DB_PATH, SECRET_KEY),
            host=DEFAULT_HOST,
            port=DEFAULT_PORT,
            reload=False,
            access_log=True
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

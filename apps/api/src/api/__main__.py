from __future__ import annotations

import os

import uvicorn


def main() -> None:
    host = os.getenv("CLINIC_API_HOST", "0.0.0.0")
    port = int(os.getenv("CLINIC_API_PORT", "8100"))
    uvicorn.run("api.app:create_app", host=host, port=port, reload=False, factory=True)


if __name__ == "__main__":
    main()

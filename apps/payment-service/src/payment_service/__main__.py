from __future__ import annotations

import os

import uvicorn


def main() -> None:
    host = os.getenv("PAYMENT_SERVICE_HOST", "0.0.0.0")
    port = int(os.getenv("PAYMENT_SERVICE_PORT", "8101"))
    uvicorn.run("payment_service.app:create_app", host=host, port=port, reload=False, factory=True)


if __name__ == "__main__":
    main()

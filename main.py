import os

import uvicorn


def run() -> None:
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run("taskboard.main:app", host=host, port=port)


if __name__ == "__main__":
    run()

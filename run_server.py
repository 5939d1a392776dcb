import logging
import os

import uvicorn

if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("CARELOG_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    print("Starting carelog API Server...")
    print("Docs available at: http://localhost:8000/docs")

    uvicorn.run(
        "carelog.api.server:app",
        host="0.0.0.0",
        port=int(os.environ.get("CARELOG_PORT", "8000")),
        reload=os.environ.get("CARELOG_RELOAD", "") == "1"
    )

import logging
import uvicorn
import os
from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

if __name__ == "__main__":
    port = int(os.getenv("PORT", 8000))
    print(f"Starting Voice Scheduler on port {port}...")
    uvicorn.run("voicesched.main:app", host="0.0.0.0", port=port, reload=True)

# =======================================================================================
# visitor_checkin/__main__.py - `python -m visitor_checkin`
# =======================================================================================
import uvicorn
from .config import config


def main():
    uvicorn.run("visitor_checkin.main:app", host=config.API_HOST, port=config.API_PORT)


if __name__ == "__main__":
    main()

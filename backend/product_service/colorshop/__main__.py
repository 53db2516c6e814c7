# colorshop/backend/product_service/colorshop/__main__.py

import uvicorn

from .config import PORT

if __name__ == "__main__":
    uvicorn.run("colorshop.main:app", host="0.0.0.0", port=PORT)

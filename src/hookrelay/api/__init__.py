"""FastAPI REST API for HookRelay.

Example:
    ```python
    import uvicorn
    from hookrelay.api import create_app

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
    ```

Or run directly:
    ```bash
    uvicorn hookrelay.api:app --reload
    ```
"""

from .admin_router import admin_router
from .app import app, create_app
from .router import router

__all__ = [
    "admin_router",
    "app",
    "create_app",
    "router",
]

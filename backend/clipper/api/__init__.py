from clipper.api.routes import router

__all__ = ["router"]

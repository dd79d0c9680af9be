from fastapi import APIRouter


router = APIRouter()


@router.get("/")
def index() -> dict:
    """Liveness probe and endpoint listing."""
    return {
        "success": True,
        "message": "AI Image Generator API is running",
        "endpoints": {
            "POST /generate-image": "Generate AI image and store on public storage service",
        },
    }

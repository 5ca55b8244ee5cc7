from pydantic import BaseModel


class PreviewMetadata(BaseModel):
    """Wire shape of ``GET /api/link/preview``. Absent fields are empty strings."""

    url: str
    title: str = ""
    description: str = ""
    image: str = ""

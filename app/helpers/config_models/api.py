from pydantic import BaseModel


class ApiModel(BaseModel):
    cors_origins: list[str] = ["http://middleware:3001"]
    root_path: str = ""

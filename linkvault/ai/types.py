from pydantic import BaseModel, ConfigDict, Field


class LinkMetadata(BaseModel):
    """
    What we know about a single URL after extraction, and later after the AI
    has had a go at its tags and categories. Every field has an empty default
    so nothing downstream has to care whether a page had, say, an og:image.
    On the wire the image field is camelCase (imageUrl) to match what the
    frontend already sends around.
    """

    model_config = ConfigDict(populate_by_name=True)

    url: str = ""
    title: str = ""
    description: str = ""
    image_url: str = Field(default="", alias="imageUrl")
    tags: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)

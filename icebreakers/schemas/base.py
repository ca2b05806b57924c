from pydantic import BaseModel
from pydantic.alias_generators import to_camel

class BaseSchema(BaseModel):
    class Config:
        from_attributes = True

class CamelSchema(BaseSchema):
    """camelCase on the wire, snake_case in Python."""

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True

"""
Validated Inputs

Pydantic models for every inbound control-plane and pipeline request.
Identifiers are checked here, before any command is built from them.
"""

from typing import Literal, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from dockhand.core import validation
from dockhand.exceptions import ValidationError

InputT = TypeVar("InputT", bound=BaseModel)

PruneTarget = Literal["images", "volumes", "containers", "builder", "system"]


def _check(validator, *args):
    try:
        return validator(*args)
    except ValidationError as e:
        raise ValueError(e.message)


def parse_input(model: Type[InputT], **data) -> InputT:
    """
    Build an input model, reporting failures as a dockhand ValidationError.

    Raises:
        ValidationError: With every field error joined into one message
    """
    try:
        return model(**data)
    except PydanticValidationError as e:
        problems = []
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            message = error["msg"].removeprefix("Value error, ")
            problems.append(f"{field}: {message}" if field else message)
        raise ValidationError("; ".join(problems))


class HostInput(BaseModel):
    """Base for requests that target the local daemon or a registered server."""

    host: Optional[str] = None

    @field_validator("host")
    @classmethod
    def check_host(cls, value):
        if value is None or value == "":
            return None
        return _check(validation.validate_name, value, "server")


class ApplicationRunInput(BaseModel):
    """Deploy or rebuild request."""

    application_id: int = Field(gt=0)
    title: Optional[str] = Field(default=None, max_length=255)
    description: str = ""


class BackupRunInput(BaseModel):
    backup_id: int = Field(gt=0)


class ContainerInput(HostInput):
    container_id: str

    @field_validator("container_id")
    @classmethod
    def check_container(cls, value):
        return _check(validation.validate_identifier, value)


class ImageInput(HostInput):
    image: str
    force: bool = False

    @field_validator("image")
    @classmethod
    def check_image(cls, value):
        return _check(validation.validate_image, value)


class NetworkInput(HostInput):
    name: str
    force: bool = False

    @field_validator("name")
    @classmethod
    def check_name(cls, value):
        return _check(validation.validate_name, value, "network")


class NetworkCreateInput(NetworkInput):
    driver: str = "bridge"
    subnet: Optional[str] = None
    gateway: Optional[str] = None
    ip_range: Optional[str] = None

    @field_validator("driver")
    @classmethod
    def check_driver(cls, value):
        return _check(validation.validate_driver, value)

    @field_validator("subnet", "ip_range")
    @classmethod
    def check_cidr(cls, value, info):
        return _check(validation.validate_cidr, value, info.field_name)

    @field_validator("gateway")
    @classmethod
    def check_gateway(cls, value):
        return _check(validation.validate_address, value, "gateway")


class VolumeInput(HostInput):
    name: str
    force: bool = False

    @field_validator("name")
    @classmethod
    def check_name(cls, value):
        return _check(validation.validate_name, value, "volume")


class StackInput(HostInput):
    name: str

    @field_validator("name")
    @classmethod
    def check_name(cls, value):
        return _check(validation.validate_name, value, "stack")


class ServiceScaleInput(HostInput):
    service: str
    replicas: int = Field(gt=0)

    @field_validator("service")
    @classmethod
    def check_service(cls, value):
        return _check(validation.validate_name, value, "service")


class PruneInput(HostInput):
    target: PruneTarget = "system"

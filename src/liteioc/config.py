"""Declarative service configuration.

This module turns a static structure (typically loaded by the host application
from JSON, YAML or TOML) into registrations on a `Container`. The container core
never imports it.

Example:
    ```python
    config = ContainerConfiguration.from_properties({
        "services": {
            "logger": {"factory": "myapp.logging.Logger"},
            "db": {"factory": "myapp.db.Database", "dependencies": ["logger"]},
            "users": {
                "factory": "myapp.users.UserService",
                "dependencies": ["db", "logger"],
                "lifetime": "transient",
            },
        }
    })
    container = config.build_container()
    ```

"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ImportString, field_validator

from ._container import Container
from ._descriptor import Lifetime


logger = logging.getLogger(__name__)


class ServiceConfiguration(BaseModel):
    """One service entry: factory reference, dependency names and lifetime.

    `factory` and `contract` are dotted import paths (`package.module.attr`),
    imported during validation.
    """

    model_config = ConfigDict(
        # Immutable - configuration cannot be modified after creation
        frozen=True,
        # Strict - extra fields not in the model are rejected
        extra="forbid",
    )

    factory: ImportString
    dependencies: list[str] = Field(default_factory=list)
    lifetime: Lifetime = Lifetime.SINGLETON
    contract: ImportString | None = None
    replace: bool = False

    @field_validator("factory")
    @classmethod
    def _factory_is_callable(cls, value: Any) -> Any:
        if not callable(value):
            msg = f"factory must reference a callable, got {type(value).__name__}"
            raise ValueError(msg)
        return value

    @field_validator("dependencies")
    @classmethod
    def _dependencies_are_unique(cls, value: list[str]) -> list[str]:
        if any(not dep for dep in value):
            msg = "dependency names must be non-empty"
            raise ValueError(msg)
        duplicates = sorted({dep for dep in value if value.count(dep) > 1})
        if duplicates:
            msg = f"dependencies declared more than once: {', '.join(duplicates)}"
            raise ValueError(msg)
        return value

    @field_validator("contract")
    @classmethod
    def _contract_is_type(cls, value: Any) -> Any:
        if value is not None and not isinstance(value, type):
            msg = f"contract must reference a class or Protocol, got {type(value).__name__}"
            raise ValueError(msg)
        return value


class ContainerConfiguration(BaseModel):
    """Static mapping of service names to their configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    services: dict[str, ServiceConfiguration] = Field(default_factory=dict)

    @field_validator("services")
    @classmethod
    def _names_are_non_empty(cls, value: dict[str, ServiceConfiguration]) -> dict[str, ServiceConfiguration]:
        if "" in value:
            msg = "service names must be non-empty"
            raise ValueError(msg)
        return value

    @classmethod
    def from_properties(cls, properties: dict[str, Any]) -> ContainerConfiguration:
        """Create configuration from a properties dictionary with validation.

        Raises:
            ValidationError: If properties are invalid, a factory cannot be imported,
                or required fields are missing.

        """
        return cls.model_validate(properties)

    def apply(self, container: Container) -> None:
        """Register every configured service on `container`."""
        for name, service in self.services.items():
            container.register(
                name,
                service.factory,
                service.dependencies,
                service.lifetime,
                replace=service.replace,
                contract=service.contract,
            )
        logger.debug("Applied configuration with %d service(s)", len(self.services))

    def build_container(self) -> Container:
        container = Container()
        self.apply(container)
        return container

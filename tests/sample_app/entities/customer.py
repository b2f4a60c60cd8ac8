from abc import ABC, abstractmethod
from enum import Enum
from typing import final


class Status(Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class BaseEntity(ABC):
    @abstractmethod
    def identity(self) -> object: ...


@final
class Customer(BaseEntity):
    def identity(self) -> object:
        return 1


class Supplier:
    pass

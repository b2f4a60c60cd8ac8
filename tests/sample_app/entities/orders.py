from typing import final

from tests.sample_app.contracts import Exportable


@final
class Invoice(Exportable):
    def export(self) -> dict:
        return {}

"""Request parameter objects for endpoints that take many optional settings."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field


@dataclass(frozen=True)
class TriggerSinkParams:
    """
    Parameters for triggering a sink pipe export.

    ``template_variables`` fill placeholders in ``file_template`` and are sent
    as top-level parameters alongside the others.
    """

    connection: str | None = None
    path: str | None = None
    file_template: str | None = None
    format: str | None = None
    compression: str | None = None
    write_strategy: str | None = None
    template_variables: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        params = {name: value for name, value in asdict(self).items() if value is not None}
        variables = params.pop("template_variables", {})
        return {**params, **variables}

"""
SLA Value Objects
==================

SLA hours loaded from YAML.

Lookup precedence for a ticket is subcategory, then category, then the
defaults block. A level that only sets one of the two hours inherits the
other from the next level down.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator


class SLATarget(BaseModel):
    """Acknowledgement/resolution hours for one configuration level."""
    acknowledgement_hours: Optional[float] = Field(default=None, gt=0)
    resolution_hours: Optional[float] = Field(default=None, gt=0)


class DefaultSLATarget(SLATarget):
    acknowledgement_hours: float = Field(default=2, gt=0)
    resolution_hours: float = Field(default=48, gt=0)


class ResolvedSLA(BaseModel):
    """Effective hours for one ticket."""
    acknowledgement_hours: float
    resolution_hours: float
    source: str = Field(description="defaults, category:<id> or subcategory:<id>")


class SLAConfig(BaseModel):
    """
    SLA configuration loaded from ``sla_config.yaml``.

    Example:
        defaults:
          acknowledgement_hours: 2
          resolution_hours: 48
        categories:
          3: {resolution_hours: 72}
        subcategories:
          11: {acknowledgement_hours: 1, resolution_hours: 24}
    """
    defaults: DefaultSLATarget = Field(default_factory=DefaultSLATarget)
    categories: Dict[int, SLATarget] = Field(default_factory=dict)
    subcategories: Dict[int, SLATarget] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_defaults(self) -> "SLAConfig":
        """Ack hours above resolution hours would violate the deadline ordering."""
        if self.defaults.acknowledgement_hours > self.defaults.resolution_hours:
            raise ValueError("defaults.acknowledgement_hours cannot exceed resolution_hours")
        return self

    def targets_for(
        self,
        category_id: Optional[int] = None,
        subcategory_id: Optional[int] = None,
    ) -> ResolvedSLA:
        ack = self.defaults.acknowledgement_hours
        resolution = self.defaults.resolution_hours
        source = "defaults"

        levels = [
            ("category", category_id, self.categories),
            ("subcategory", subcategory_id, self.subcategories),
        ]
        for name, key, table in levels:
            if key is None or key not in table:
                continue
            target = table[key]
            if target.acknowledgement_hours is not None:
                ack = target.acknowledgement_hours
            if target.resolution_hours is not None:
                resolution = target.resolution_hours
            source = f"{name}:{key}"

        return ResolvedSLA(
            acknowledgement_hours=ack,
            resolution_hours=resolution,
            source=source,
        )

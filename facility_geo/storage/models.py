"""Pydantic models for facility documents and their coordinates."""
from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

POINT_FIELD = "Point"


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A resolved (latitude, longitude) pair in degrees.

    Unresolved coordinates are represented by ``None``; ``Coordinate(0.0, 0.0)``
    is a real place in the Gulf of Guinea.
    """

    latitude: float
    longitude: float

    def to_geojson(self) -> "GeoPoint":
        return GeoPoint(coordinates=[self.longitude, self.latitude])


class GeoPoint(BaseModel):
    """GeoJSON point as stored in MongoDB, ``[longitude, latitude]`` order."""

    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(min_length=2, max_length=2)

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]

    def to_coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class Facility(BaseModel):
    """A healthcare facility record from the CMS hospital dataset.

    Field aliases mirror the document keys. A facility read from MongoDB keeps
    the document it came from, and `to_document` hands that back untouched so
    a full-document replace only changes what the caller sets.
    """

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True, extra="allow")

    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    facility_id: Any = Field(default=None, alias="Facility ID")
    name: Optional[str] = Field(default=None, alias="Facility Name")
    address: Optional[str] = Field(default=None, alias="Address")
    city: Optional[str] = Field(default=None, alias="City")
    state: Optional[str] = Field(default=None, alias="State")
    zip_code: Any = Field(default=None, alias="ZIP Code")
    location: Optional[str] = Field(default=None, alias="Location")
    point: Optional[GeoPoint] = Field(default=None, alias=POINT_FIELD)

    _document: Optional[Dict[str, Any]] = PrivateAttr(default=None)

    @field_validator("name", "address", "city", "state", "location", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def zip_prefix(self) -> Optional[int]:
        """Five digit ZIP as an int; ``None`` when the stored value is not a ZIP."""
        value = self.zip_code
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if value is None:
            return None
        # ZIP+4 values such as "11201-1234" keep the five digit prefix
        text = str(value).strip().split("-")[0]
        return int(text) if text.isdigit() else None

    @property
    def coordinate(self) -> Optional[Coordinate]:
        if self.point is None:
            return None
        return self.point.to_coordinate()

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Facility":
        facility = cls.model_validate(document)
        facility._document = copy.deepcopy(document)
        return facility

    def to_document(self) -> Dict[str, Any]:
        """Return the MongoDB document for this facility.

        Facilities loaded with `from_document` return a copy of the stored
        document; others contain ``_id`` and the fields that were set.
        """
        if self._document is not None:
            document = copy.deepcopy(self._document)
        else:
            document = self.model_dump(by_alias=True, exclude_unset=True)
        document["_id"] = self.id
        return document

# ltn/models/savefile.py
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict


class SavefileFeature(BaseModel):
    """
    One GeoJSON feature of a savefile. Geometry stays a raw GeoJSON dict;
    properties are checked per `kind` when the savefile is loaded.
    """
    model_config = ConfigDict(extra="allow")

    type: Literal["Feature"] = "Feature"
    geometry: Optional[Dict[str, Any]] = None
    properties: Optional[Dict[str, Any]] = None

    def props(self) -> Dict[str, Any]:
        return self.properties or {}


class Savefile(BaseModel):
    """
    A FeatureCollection holding only the edits, plus the study area name as a
    foreign member.
    """
    model_config = ConfigDict(extra="allow")

    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: List[SavefileFeature]
    study_area_name: Optional[str] = None

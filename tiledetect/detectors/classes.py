"""Class table for the WALDO aerial detection model."""

from dataclasses import dataclass
from typing import Dict, List


@dataclass(frozen=True)
class ObjectClass:
    """A detector output class."""
    id: int
    name: str
    display_name: str


# Id 9 is not produced by the model.
WALDO_CLASSES: Dict[int, ObjectClass] = {
    0: ObjectClass(0, "light_vehicle", "LightVehicle"),
    1: ObjectClass(1, "person", "Person"),
    2: ObjectClass(2, "building", "Building"),
    3: ObjectClass(3, "upole", "UPole"),
    4: ObjectClass(4, "boat", "Boat"),
    5: ObjectClass(5, "bike", "Bike"),
    6: ObjectClass(6, "container", "Container"),
    7: ObjectClass(7, "truck", "Truck"),
    8: ObjectClass(8, "gastank", "Gastank"),
    10: ObjectClass(10, "digger", "Digger"),
    11: ObjectClass(11, "solarpanels", "Solarpanels"),
    12: ObjectClass(12, "bus", "Bus"),
}


def class_label(classes: Dict[int, ObjectClass], class_id: int) -> str:
    """Display name for a class id, or "class_<id>" for ids missing from the table."""
    cls = classes.get(class_id)
    return cls.display_name if cls is not None else f"class_{class_id}"


def classes_from_names(names: List[str]) -> Dict[int, ObjectClass]:
    """Build a class table from an ordered list of display names."""
    return {i: ObjectClass(i, name.lower(), name) for i, name in enumerate(names)}

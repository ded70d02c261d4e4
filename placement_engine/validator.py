"""Request validation and parsing."""

import json
from typing import Any, List, Optional, Set, Tuple, Union

from .cameras import DEPTH_BANDS
from .constants import CATEGORIES
from .registry import SIDE_ALIASES, SIDES, normalize_name
from .schema import (
    ALLOWED_RELATIONS, REFERENCE_REQUIRED, AssetFootprint, Pattern, PatternRequest, PlacementRequest,
    Relation, RelationNode, RelationshipRequest, SubjectKind, SubjectSpec,
)

VALID_PATTERNS = [p.value for p in Pattern]
VALID_KINDS = [k.value for k in SubjectKind]
VALID_RELATIONS = [r.value for r in Relation]
VALID_SIDES = list(SIDES)

STRING_PARAMS = ("camera", "facing", "direction", "density", "zone", "from", "to")
NUMBER_PARAMS = ("distance", "spacing", "radius", "jitter", "view_yaw", "lean")


class RequestValidationError(Exception):
    """Raised when a placement request fails validation."""
    pass


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_json_format(json_str: str) -> Tuple[bool, Optional[Any], str]:
    """
    Validate JSON format and parse content.

    Returns:
        (is_valid, parsed, error_message)
    """
    try:
        return True, json.loads(json_str), ""
    except json.JSONDecodeError as e:
        return False, None, f"Invalid JSON: {str(e)}"


def validate_footprint(data: Any, where: str) -> Tuple[bool, str]:
    """Validate a footprint: a positive radius or two positive half extents."""
    if not isinstance(data, dict):
        return False, f"{where}: 'footprint' must be an object"

    radius = data.get("radius")
    half_extents = data.get("half_extents")
    if radius is None and half_extents is None:
        return False, f"{where}: footprint needs 'radius' or 'half_extents'"
    if radius is not None and (not _is_number(radius) or radius <= 0):
        return False, f"{where}: footprint 'radius' must be a positive number"
    if half_extents is not None:
        if (not isinstance(half_extents, (list, tuple)) or len(half_extents) != 2
                or not all(_is_number(v) and v > 0 for v in half_extents)):
            return False, f"{where}: footprint 'half_extents' must be two positive numbers"

    for key in ("height", "vertical_offset"):
        if key in data and not _is_number(data[key]):
            return False, f"{where}: footprint '{key}' must be a number"
    return True, ""


def _validate_common(data: dict, where: str, needs_count: bool = True) -> Tuple[bool, str]:
    if data.get("category") not in CATEGORIES:
        return False, f"{where}: invalid category '{data.get('category')}'. Must be one of {list(CATEGORIES)}"
    if needs_count and "count" in data:
        count = data["count"]
        if not isinstance(count, int) or isinstance(count, bool) or count < 1:
            return False, f"{where}: 'count' must be a positive integer"
    if "scale" in data and (not _is_number(data["scale"]) or data["scale"] <= 0):
        return False, f"{where}: 'scale' must be a positive number"
    if "footprint" not in data:
        return False, f"{where}: missing required field 'footprint'"
    return validate_footprint(data["footprint"], where)


def validate_pattern_dict(data: dict) -> Tuple[bool, str]:
    """Validate a pattern request dictionary."""
    where = f"Pattern request '{data.get('id', '?')}'"
    if "count" not in data:
        return False, f"{where}: missing required field 'count'"

    is_valid, error = _validate_common(data, where)
    if not is_valid:
        return False, error

    if data.get("pattern") not in VALID_PATTERNS:
        return False, f"{where}: invalid pattern '{data.get('pattern')}'. Must be one of {VALID_PATTERNS}"
    if "region" in data and not isinstance(data["region"], str):
        return False, f"{where}: 'region' must be a zone descriptor string"

    for key in ("min_distance", "radius", "jitter"):
        if key in data and data[key] is not None and (not _is_number(data[key]) or data[key] < 0):
            return False, f"{where}: '{key}' must be a non-negative number"

    return True, ""


def validate_node_params(params: dict, where: str) -> Tuple[bool, str]:
    """Validate the node params the strategies read."""
    for key in ("side", "surface"):
        if key in params and (not isinstance(params[key], str)
                               or SIDE_ALIASES.get(params[key], params[key]) not in VALID_SIDES):
            return False, f"{where}: invalid {key} '{params[key]}'. Must be one of {VALID_SIDES + list(SIDE_ALIASES)}"
    if "role" in params and (not isinstance(params["role"], str) or params["role"] not in DEPTH_BANDS):
        return False, f"{where}: invalid role '{params['role']}'. Must be one of {list(DEPTH_BANDS)}"

    for key in STRING_PARAMS:
        if key in params and not isinstance(params[key], str):
            return False, f"{where}: '{key}' must be a string"
    for key in NUMBER_PARAMS:
        if key in params and not _is_number(params[key]):
            return False, f"{where}: '{key}' must be a number"
    for key in ("rows", "cols"):
        if key in params and (not isinstance(params[key], int) or isinstance(params[key], bool) or params[key] < 1):
            return False, f"{where}: '{key}' must be a positive integer"

    if "position" in params:
        position = params["position"]
        if not isinstance(position, (list, tuple)) or len(position) != 2 or not all(map(_is_number, position)):
            return False, f"{where}: 'position' must be two numbers [x, z]"
    if "horizontal" in params:
        horizontal = params["horizontal"]
        values = horizontal if isinstance(horizontal, (list, tuple)) else [horizontal]
        if not all(map(_is_number, values)):
            return False, f"{where}: 'horizontal' must be a number or a list of numbers"
    if "foreground" in params:
        foreground = params["foreground"]
        if not isinstance(foreground, list) or not all(isinstance(name, str) for name in foreground):
            return False, f"{where}: 'foreground' must be a list of names"
    return True, ""


def validate_node_spec(node: dict, index: int) -> Tuple[bool, str]:
    """Validate a single relation node."""
    for field in ("name", "kind", "relation", "subject"):
        if field not in node:
            return False, f"Node {index}: missing required field '{field}'"

    if not isinstance(node["name"], str) or not node["name"].strip():
        return False, f"Node {index}: 'name' must be a non-empty string"

    if node["kind"] not in VALID_KINDS:
        return False, f"Node {index}: invalid kind '{node['kind']}'. Must be one of {VALID_KINDS}"

    if node["relation"] not in VALID_RELATIONS:
        return False, f"Node {index}: invalid relation '{node['relation']}'. Must be one of {VALID_RELATIONS}"

    kind, relation = SubjectKind(node["kind"]), Relation(node["relation"])
    allowed = sorted(r.value for r in ALLOWED_RELATIONS[kind])
    if relation not in ALLOWED_RELATIONS[kind]:
        return False, f"Node {index}: relation '{relation.value}' not allowed for {kind.value}. Must be one of {allowed}"

    reference = node.get("reference")
    if reference is not None and (not isinstance(reference, str) or not reference.strip()):
        return False, f"Node {index}: 'reference' must be a non-empty string"
    if relation in REFERENCE_REQUIRED and reference is None:
        return False, f"Node {index}: relation '{relation.value}' requires a 'reference'"
    if reference is not None and normalize_name(reference) == normalize_name(node["name"]):
        return False, f"Node {index}: a node cannot reference itself"

    params = node.get("params", {})
    if not isinstance(params, dict):
        return False, f"Node {index}: 'params' must be an object"
    is_valid, error = validate_node_params(params, f"Node {index}")
    if not is_valid:
        return False, error
    if relation == Relation.ALONG and (not isinstance(params.get("to"), str)
                                       or not (reference or isinstance(params.get("from"), str))):
        return False, f"Node {index}: 'along' needs a path: 'reference' (or params.from) and params.to"

    if not isinstance(node["subject"], dict):
        return False, f"Node {index}: 'subject' must be an object"
    return _validate_common(node["subject"], f"Node {index} subject")


def validate_relationship_dict(data: dict) -> Tuple[bool, str]:
    """Validate a relationship request dictionary."""
    if not isinstance(data.get("nodes"), list):
        return False, "'nodes' must be a list"
    if not data["nodes"]:
        return False, "Relationship request has no nodes"

    names: Set[str] = set()
    for i, node in enumerate(data["nodes"]):
        if not isinstance(node, dict):
            return False, f"Node {i}: must be an object"
        is_valid, error = validate_node_spec(node, i)
        if not is_valid:
            return False, error
        key = normalize_name(node["name"])
        if key in names:
            return False, f"Node {i}: duplicate name '{node['name']}'"
        names.add(key)

    return True, ""


def request_type(data: dict) -> str:
    """Explicit 'type', else inferred from the presence of 'nodes'."""
    return data.get("type") or ("relationship" if "nodes" in data else "pattern")


def validate_request_dict(data: Any) -> Tuple[bool, str]:
    """
    Validate a pattern or relationship request dictionary.

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request must be an object"
    kind = request_type(data)
    if kind == "pattern":
        return validate_pattern_dict(data)
    if kind == "relationship":
        return validate_relationship_dict(data)
    return False, f"Invalid request type '{kind}'. Must be 'pattern' or 'relationship'"


def _footprint(data: dict) -> AssetFootprint:
    half_extents = data.get("half_extents")
    return AssetFootprint(
        radius=float(data["radius"]) if data.get("radius") is not None else None,
        half_extents=(float(half_extents[0]), float(half_extents[1])) if half_extents is not None else None,
        height=float(data.get("height", 2.0)),
        vertical_offset=float(data.get("vertical_offset", 0.0)),
    )


def _subject(data: dict) -> SubjectSpec:
    return SubjectSpec(
        category=data["category"],
        footprint=_footprint(data["footprint"]),
        count=int(data.get("count", 1)),
        scale=float(data.get("scale", 1.0)),
    )


def build_request(data: dict) -> PlacementRequest:
    """Build a typed request from an already validated dictionary."""
    if request_type(data) == "relationship":
        nodes = [
            RelationNode(
                name=node["name"],
                kind=SubjectKind(node["kind"]),
                subject=_subject(node["subject"]),
                relation=Relation(node["relation"]),
                reference=node.get("reference"),
                params=dict(node.get("params", {})),
            )
            for node in data["nodes"]
        ]
        return RelationshipRequest(nodes=nodes, request_id=data.get("id"))

    return PatternRequest(
        category=data["category"],
        count=int(data["count"]),
        pattern=Pattern(data["pattern"]),
        footprint=_footprint(data["footprint"]),
        region=data.get("region", "center"),
        min_distance=float(data["min_distance"]) if data.get("min_distance") is not None else None,
        radius=float(data.get("radius", 15.0)),
        jitter=float(data.get("jitter", 0.3)),
        scale=float(data.get("scale", 1.0)),
        request_id=data.get("id"),
    )


def parse_request(source: Union[str, dict]) -> PlacementRequest:
    """
    Parse and validate a placement request.

    Args:
        source: JSON string or already decoded dictionary

    Returns:
        PatternRequest or RelationshipRequest

    Raises:
        RequestValidationError: If validation fails
    """
    data = source
    if isinstance(source, str):
        is_valid, data, error = validate_json_format(source)
        if not is_valid:
            raise RequestValidationError(error)

    is_valid, error = validate_request_dict(data)
    if not is_valid:
        raise RequestValidationError(error)

    return build_request(data)


def parse_requests(source: Union[str, dict, list]) -> List[PlacementRequest]:
    """Parse a single request or a list of requests."""
    data = source
    if isinstance(source, str):
        is_valid, data, error = validate_json_format(source)
        if not is_valid:
            raise RequestValidationError(error)
    if isinstance(data, dict) and "requests" in data:
        data = data["requests"]
    if not isinstance(data, list):
        data = [data]
    return [parse_request(item) for item in data]

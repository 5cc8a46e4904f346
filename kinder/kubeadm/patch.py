"""Applying merge patches and RFC 6902 JSON patches to a stream of YAML documents.

Documents and patches are matched on their ``kind`` and ``apiVersion`` fields.
A patch that does not set ``apiVersion`` matches every document of its kind.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Iterable

import yaml

_YAML_SEPARATOR = "\n---"
_MISSING = object()


class PatchError(ValueError):
    """A document or a patch could not be parsed or applied."""


@dataclass(frozen=True)
class PatchJSON6902:
    """An inline RFC 6902 JSON patch and the resource it targets."""

    group: str
    version: str
    kind: str
    patch: str

    @property
    def api_version(self) -> str:
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"


@dataclass(frozen=True)
class _MatchInfo:
    kind: str = ""
    api_version: str = ""

    def accepts(self, other: "_MatchInfo") -> bool:
        # kind must match; an empty apiVersion in the patch matches any version
        return self.kind == other.kind and (not other.api_version or self.api_version == other.api_version)


def split_yaml_documents(stream: str) -> list[str]:
    """Split a YAML stream into its documents on lines starting with ``---``.

    The separator must follow a newline; the rest of its line is discarded.
    A separator line that is the last, unterminated line of the stream ends
    the split without yielding the document before it, unless the separator
    is exactly the end of the stream.
    """
    documents: list[str] = []
    data = stream
    while data:
        index = data.find(_YAML_SEPARATOR)
        if index < 0:
            documents.append(data)
            break
        after = data[index + len(_YAML_SEPARATOR):]
        if not after:
            documents.append(data[:index])
            break
        newline = after.find("\n")
        if newline < 0:
            break
        documents.append(data[:index])
        data = after[newline + 1:]
    return documents


def _jsonify(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _jsonify(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonify(item) for item in value]
    return value


def _load_yaml(raw: str) -> Any:
    try:
        return _jsonify(yaml.safe_load(raw))
    except yaml.YAMLError as exc:
        raise PatchError(f"invalid yaml: {exc}") from exc


def _match_info(raw: str, data: Any) -> _MatchInfo:
    if data is None:
        return _MatchInfo()
    if not isinstance(data, dict):
        raise PatchError(f"failed to parse type meta for {raw!r}: not an object")
    kind = data.get("kind", "")
    api_version = data.get("apiVersion", "")
    if kind is None:
        kind = ""
    if api_version is None:
        api_version = ""
    if not isinstance(kind, str) or not isinstance(api_version, str):
        raise PatchError(f"failed to parse type meta for {raw!r}: kind and apiVersion must be strings")
    return _MatchInfo(kind=kind, api_version=api_version)


def _to_yaml(data: Any) -> str:
    if data is None:
        return "null\n"
    text = yaml.safe_dump(
        data,
        default_flow_style=False,
        sort_keys=True,
        allow_unicode=True,
        width=2**31 - 1,
    )
    return text.removesuffix("...\n")


def merge_patch(target: Any, patch: Any) -> Any:
    """Return target with an RFC 7386 JSON merge patch applied; inputs are not modified."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


def _parse_pointer(path: Any) -> list[str]:
    if not isinstance(path, str):
        raise PatchError(f"invalid path: {path!r}")
    if path == "":
        return []
    if not path.startswith("/"):
        raise PatchError(f"invalid path: {path!r}")
    return [token.replace("~1", "/").replace("~0", "~") for token in path[1:].split("/")]


def _index(node: list, token: str, path: str, *, allow_end: bool = False) -> int:
    if not token.isdigit() or (len(token) > 1 and token.startswith("0")):
        raise PatchError(f"invalid array index {token!r} in path {path}")
    index = int(token)
    limit = len(node) if allow_end else len(node) - 1
    if index > limit:
        raise PatchError(f"array index {index} out of bounds in path {path}")
    return index


def _child(node: Any, token: str, path: str) -> Any:
    if isinstance(node, dict):
        if token not in node:
            raise PatchError(f"path {path} does not exist")
        return node[token]
    if isinstance(node, list):
        return node[_index(node, token, path)]
    raise PatchError(f"path {path} does not exist")


def _resolve(document: Any, tokens: list[str], path: str) -> Any:
    node = document
    for token in tokens:
        node = _child(node, token, path)
    return node


def _parent(document: Any, tokens: list[str], path: str) -> tuple[Any, str]:
    if not tokens:
        raise PatchError(f"operation not supported on the document root: {path!r}")
    return _resolve(document, tokens[:-1], path), tokens[-1]


def _add(document: Any, tokens: list[str], path: str, value: Any) -> Any:
    if not tokens:
        return value
    parent, last = _parent(document, tokens, path)
    if isinstance(parent, dict):
        parent[last] = value
    elif isinstance(parent, list):
        if last == "-":
            parent.append(value)
        else:
            parent.insert(_index(parent, last, path, allow_end=True), value)
    else:
        raise PatchError(f"path {path} does not exist")
    return document


def _remove(document: Any, tokens: list[str], path: str) -> Any:
    parent, last = _parent(document, tokens, path)
    if isinstance(parent, dict):
        if last not in parent:
            raise PatchError(f"unable to remove nonexistent key {last!r} in path {path}")
        del parent[last]
    elif isinstance(parent, list):
        del parent[_index(parent, last, path)]
    else:
        raise PatchError(f"path {path} does not exist")
    return document


def _replace(document: Any, tokens: list[str], path: str, value: Any) -> Any:
    if not tokens:
        return value
    parent, last = _parent(document, tokens, path)
    if isinstance(parent, dict):
        if last not in parent:
            raise PatchError(f"unable to replace missing key {last!r} in path {path}")
        parent[last] = value
    elif isinstance(parent, list):
        parent[_index(parent, last, path)] = value
    else:
        raise PatchError(f"path {path} does not exist")
    return document


def _json_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(_json_equal(left[k], right[k]) for k in left)
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(_json_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return False
    return type(left) is type(right) and left == right or (
        isinstance(left, (int, float)) and isinstance(right, (int, float)) and left == right
    )


def _operand(operation: dict, name: str) -> Any:
    value = operation.get(name, _MISSING)
    if value is _MISSING:
        raise PatchError(f"operation {operation.get('op')!r} is missing {name!r}")
    return value


def apply_json6902(document: Any, operations: Iterable[dict]) -> Any:
    """Return document with the RFC 6902 operations applied; the input is not modified."""
    result = copy.deepcopy(document)
    for operation in operations:
        if not isinstance(operation, dict):
            raise PatchError(f"invalid operation: {operation!r}")
        op = operation.get("op")
        path = _operand(operation, "path")
        tokens = _parse_pointer(path)
        if op == "add":
            result = _add(result, tokens, path, copy.deepcopy(_operand(operation, "value")))
        elif op == "remove":
            result = _remove(result, tokens, path)
        elif op == "replace":
            result = _replace(result, tokens, path, copy.deepcopy(_operand(operation, "value")))
        elif op in ("move", "copy"):
            source = _operand(operation, "from")
            source_tokens = _parse_pointer(source)
            value = copy.deepcopy(_resolve(result, source_tokens, source))
            if op == "move":
                if len(tokens) > len(source_tokens) and tokens[: len(source_tokens)] == source_tokens:
                    raise PatchError(f"cannot move {source} into its own child {path}")
                result = _remove(result, source_tokens, source)
            result = _add(result, tokens, path, value)
        elif op == "test":
            expected = _operand(operation, "value")
            if not _json_equal(_resolve(result, tokens, path), expected):
                raise PatchError(f"testing value {path} failed")
        else:
            raise PatchError(f"unexpected operation {op!r}")
    return result


@dataclass
class _Resource:
    data: Any
    match_info: _MatchInfo


def _parse_resources(stream: str) -> list[_Resource]:
    resources = []
    for raw in split_yaml_documents(stream):
        data = _load_yaml(raw)
        resources.append(_Resource(data=data, match_info=_match_info(raw, data)))
    return resources


def _parse_merge_patches(raw_patches: Iterable[str]) -> list[tuple[Any, _MatchInfo]]:
    parsed = []
    for raw in raw_patches:
        data = _load_yaml(raw)
        parsed.append((data, _match_info(raw, data)))
    return parsed


def _convert_json6902_patches(patches: Iterable[PatchJSON6902]) -> list[tuple[list, _MatchInfo]]:
    converted = []
    for patch in patches:
        operations = _load_yaml(patch.patch)
        if not isinstance(operations, list):
            raise PatchError(f"JSON 6902 patch is not a list of operations: {patch.patch!r}")
        converted.append((operations, _MatchInfo(kind=patch.kind, api_version=patch.api_version)))
    return converted


def build(to_patch: str, patches: Iterable[str] = (), patches6902: Iterable[PatchJSON6902] = ()) -> str:
    """Apply merge patches, then JSON 6902 patches, to each matching document of a YAML stream.

    Returns the patched stream, documents separated by ``---``.
    """
    try:
        resources = _parse_resources(to_patch)
    except PatchError as exc:
        raise PatchError(f"failed to parse yaml to patch: {exc}") from exc
    try:
        merge_patches = _parse_merge_patches(patches)
    except PatchError as exc:
        raise PatchError(f"failed to parse patches: {exc}") from exc
    try:
        json_patches = _convert_json6902_patches(patches6902)
    except PatchError as exc:
        raise PatchError(f"failed to parse JSON 6902 patches: {exc}") from exc

    parts = []
    for resource in resources:
        for data, info in merge_patches:
            if resource.match_info.accepts(info):
                resource.data = merge_patch(resource.data, data)
        for operations, info in json_patches:
            if resource.match_info.accepts(info):
                try:
                    resource.data = apply_json6902(resource.data, operations)
                except PatchError as exc:
                    raise PatchError(f"failed to apply JSON 6902 patch: {exc}") from exc
        parts.append(_to_yaml(resource.data))
    return "---\n".join(parts)
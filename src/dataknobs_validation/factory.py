"""Build schemas from configuration (dicts, YAML or JSON files).

Example configuration:

    ```yaml
    schemas:
      - name: address
        fields:
          - name: city
            type: str
            rules:
              - min_len: 1
          - name: zip_code
            type: str
            rules:
              - pattern: "^[0-9]{5}$"
      - name: customer
        description: Customer record
        fields:
          - name: name
            type: str
            rules:
              - min_len: 1
              - max_len: 64
          - name: age
            type: int
            optional: true
            rules:
              - min: 0
              - max: 150
          - name: tags
            shape:
              kind: sequence
              items: str
            rules:
              - max_len: 5
          - name: addresses
            shape:
              kind: sequence
              items:
                kind: nested
                schema: address
          - name: email
            type: str
            rules:
              - predicate: myapp.checks:looks_like_email
    ```

Nested schemas are referred to by name and may be declared in any order.
Parameters of callable-valued constraints (``predicate``) are given as import
paths, ``package.module:attr`` or ``package.module.attr``, optionally with a
message: ``[myapp.checks:looks_like_email, "not an email"]``.

Files are read with ``dataknobs_config.Config``, so the usual config
conventions apply: a ``settings`` section can supply defaults
(``schemas.description``), and an entry written as ``"@address.yaml"`` is
loaded from that file, relative to the configuration file. Schemas without a
``name`` are named by position. ``SchemaFactory`` is a ``FactoryBase``, so a
config entry with ``factory: dataknobs_validation.SchemaFactory`` builds a
schema through ``Config.get_instance``.
"""

from __future__ import annotations

import importlib
import json
import logging
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Union

import yaml
from dataknobs_common import DataknobsError
from dataknobs_config import Config, FactoryBase

from .compiler import SchemaBuilder
from .exceptions import ConfigurationError
from .functions import ConstraintFunction
from .registry import FunctionTable
from .schema import Schema
from .shapes import FieldKind, Rule, Shape, coerce_rules

logger = logging.getLogger(__name__)

SCHEMAS_TYPE = "schemas"

TYPE_NAMES: dict[str, type | None] = {
    "int": int,
    "integer": int,
    "float": float,
    "str": str,
    "string": str,
    "bool": bool,
    "boolean": bool,
    "bytes": bytes,
    "binary": bytes,
    "decimal": Decimal,
    "date": date,
    "datetime": datetime,
    "any": None,
}

KIND_NAMES: dict[str, FieldKind] = {
    "scalar": FieldKind.SCALAR,
    "optional": FieldKind.OPTIONAL,
    "sequence": FieldKind.SEQUENCE,
    "list": FieldKind.SEQUENCE,
    "mapping": FieldKind.MAPPING,
    "dict": FieldKind.MAPPING,
    "nested": FieldKind.NESTED,
    "enum": FieldKind.ENUM,
    "variants": FieldKind.ENUM,
}


def import_object(path: str) -> Any:
    """Import ``package.module:attr`` or ``package.module.attr``.

    Raises:
        ConfigurationError: If the module or attribute cannot be found
    """
    if ":" in path:
        module_path, _, attribute = path.partition(":")
    else:
        module_path, _, attribute = path.rpartition(".")
    if not module_path or not attribute:
        raise ConfigurationError(f"Invalid import path: {path}", context={"path": path})
    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        raise ConfigurationError(f"Failed to import {module_path}: {e}", context={"path": path}) from e
    obj = module
    for part in attribute.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise ConfigurationError(
                f"Module {module_path} has no attribute {attribute}", context={"path": path}
            ) from e
    return obj


def resolve_param(function: ConstraintFunction, param: Any) -> Any:
    """Turn import paths into callables for callable-valued constraints."""
    if not function.callable_param:
        return param
    if isinstance(param, str):
        return import_object(param)
    if isinstance(param, (list, tuple)) and len(param) == 2 and isinstance(param[0], str):
        return (import_object(param[0]), param[1])
    return param


class SchemaFactory(FactoryBase):
    """Factory for creating validation schemas from configuration.

    Configuration Options:
        name (str): Schema name
        description (str): Optional schema description
        fields (list): List of field definitions
        checks (list): Rules applied to the whole value

    Field Definition Options:
        name (str): Field name
        type (str): Scalar type (int, float, str, bool, bytes, decimal, date,
            datetime, any)
        optional (bool): Whether the field may be absent (default: False)
        shape (str | dict): Explicit shape, see ``build_shape``
        rules (list): Rule definitions, each ``{name: param}``

    Schemas created by one factory can refer to each other by name.

    Args:
        functions: Function table for constraint lookup; defaults to the
            built-in table
    """

    def __init__(self, functions: FunctionTable | None = None):
        self._functions = functions
        self._schemas: dict[str, Schema] = {}

    @property
    def schemas(self) -> dict[str, Schema]:
        return dict(self._schemas)

    def create(self, **config: Any) -> Schema:
        """Create a Schema from configuration.

        Args:
            **config: Schema configuration

        Returns:
            Schema instance; also remembered for later references by name

        Raises:
            ConfigurationError: If the configuration is malformed
            SchemaError: If a declaration in it is rejected by the compiler
        """
        name = config.get("name", "unnamed_schema")
        logger.info(f"Creating schema: {name}")

        builder = SchemaBuilder(
            name,
            self._functions,
            description=config.get("description"),
            param_resolver=resolve_param,
        )
        fields = config.get("fields", [])
        if not isinstance(fields, list):
            raise ConfigurationError(f"'fields' of schema {name} must be a list", context={"schema": name})
        for field_config in fields:
            self._add_field(builder, field_config)
        if config.get("checks"):
            builder.check(*self._rules(config["checks"], {"schema": name}))

        schema = builder.build()
        self._schemas[name] = schema
        return schema

    def create_many(self, configs: Iterable[Mapping[str, Any]]) -> dict[str, Schema]:
        """Create a set of schemas that may refer to each other.

        Schemas are built dependencies first, so references may point
        forwards in ``configs``.

        Raises:
            ConfigurationError: On unknown references, duplicate names or
                reference cycles
        """
        by_name: dict[str, Mapping[str, Any]] = {}
        for config in configs:
            if not isinstance(config, Mapping) or "name" not in config:
                raise ConfigurationError("Each schema configuration needs a 'name'", context={"config": config})
            if config["name"] in by_name:
                raise ConfigurationError(
                    f"Schema {config['name']} is defined twice", context={"schema": config["name"]}
                )
            by_name[config["name"]] = config

        created: dict[str, Schema] = {}
        visiting: list[str] = []

        def build(name: str) -> None:
            if name in created:
                return
            if name in visiting:
                cycle = visiting[visiting.index(name):] + [name]
                raise ConfigurationError(
                    f"Schema references form a cycle: {' -> '.join(cycle)}", context={"cycle": cycle}
                )
            visiting.append(name)
            for reference in _references(by_name[name]):
                if reference in by_name:
                    build(reference)
                elif reference not in self._schemas:
                    raise ConfigurationError(
                        f"Schema {name} refers to unknown schema {reference}",
                        context={"schema": name, "reference": reference},
                    )
            visiting.pop()
            created[name] = self.create(**by_name[name])

        for name in by_name:
            build(name)
        return {name: created[name] for name in by_name}

    def build_shape(self, config: Any, context: dict[str, Any] | None = None) -> Shape:
        """Build a shape from its configuration.

        A string is a kind name (``sequence``, ``mapping``, ...) or a type
        name (``int``, ``str``, ...). A mapping has ``kind`` plus, depending
        on the kind, ``type``, ``items``/``inner``, ``values``, ``keys``,
        ``schema``, ``variants``, ``tag`` and ``rules``.
        """
        context = context or {}
        if config is None:
            return Shape(FieldKind.SCALAR)
        if isinstance(config, str):
            if config.lower() in KIND_NAMES:
                config = {"kind": config}
            else:
                return Shape(FieldKind.SCALAR, python_type=self._type(config, context))
        if not isinstance(config, Mapping):
            raise ConfigurationError(f"Invalid shape: {config!r}", context=context)

        kind_name = str(config.get("kind", "scalar")).lower()
        if kind_name not in KIND_NAMES:
            raise ConfigurationError(f"Invalid shape kind: {kind_name}", context={**context, "kind": kind_name})
        kind = KIND_NAMES[kind_name]
        rules = self._rules(config.get("rules"), context)

        if kind is FieldKind.SCALAR:
            return Shape(kind, rules, python_type=self._type(config.get("type"), context))
        if kind in (FieldKind.OPTIONAL, FieldKind.SEQUENCE):
            inner = config.get("items", config.get("inner", config.get("type")))
            return Shape(kind, rules, inner=self.build_shape(inner, context))
        if kind is FieldKind.MAPPING:
            keys = config.get("keys")
            return Shape(
                kind,
                rules,
                inner=self.build_shape(config.get("values"), context),
                keys=self.build_shape(keys, context) if keys is not None else None,
            )
        if kind is FieldKind.NESTED:
            return Shape(kind, rules, target=self._schema(config.get("schema"), context))

        cases = config.get("variants")
        if not isinstance(cases, Mapping) or not cases:
            raise ConfigurationError("'variants' must be a non-empty mapping", context=context)
        payloads = {
            str(variant): self._variant(payload, {**context, "variant": variant})
            for variant, payload in cases.items()
        }
        return Shape(kind, rules, variants=payloads, tag=config.get("tag"))

    def _add_field(self, builder: SchemaBuilder, field_config: Any) -> None:
        if not isinstance(field_config, Mapping) or "name" not in field_config:
            raise ConfigurationError(
                f"Field configuration missing 'name' in schema {builder.name}",
                context={"schema": builder.name, "field": field_config},
            )
        field_name = field_config["name"]
        context = {"schema": builder.name, "field": field_name}
        if "shape" in field_config:
            shape = self.build_shape(field_config["shape"], context)
        else:
            shape = Shape(FieldKind.SCALAR, python_type=self._type(field_config.get("type"), context))
        if field_config.get("optional", False) and shape.kind is not FieldKind.OPTIONAL:
            shape = Shape(FieldKind.OPTIONAL, inner=shape)
        builder.field(field_name, shape, *self._rules(field_config.get("rules"), context))

    def _type(self, name: Any, context: dict[str, Any]) -> type | None:
        if name is None:
            return None
        key = str(name).lower()
        if key not in TYPE_NAMES:
            raise ConfigurationError(f"Invalid field type: {name}", context={**context, "type": name})
        return TYPE_NAMES[key]

    def _rules(self, config: Any, context: dict[str, Any]) -> tuple[Rule, ...]:
        if not config:
            return ()
        if isinstance(config, Mapping):
            config = [config]
        if not isinstance(config, list):
            raise ConfigurationError(f"Invalid rules: {config!r}", context=context)
        try:
            return coerce_rules(config)
        except TypeError as e:
            raise ConfigurationError(str(e), context=context) from e

    def _schema(self, name: Any, context: dict[str, Any]) -> Schema:
        if name not in self._schemas:
            raise ConfigurationError(
                f"Unknown schema reference: {name}", context={**context, "reference": name}
            )
        return self._schemas[name]

    def _variant(self, payload: Any, context: dict[str, Any]) -> Schema | Shape | None:
        if payload is None:
            return None
        if isinstance(payload, str) and payload in self._schemas:
            return self._schemas[payload]
        return self.build_shape(payload, context)


def _references(config: Mapping[str, Any]) -> list[str]:
    """Names of other schemas a schema configuration refers to."""
    found: list[str] = []

    def walk(shape: Any, in_variant: bool = False) -> None:
        if isinstance(shape, str):
            if in_variant and shape.lower() not in KIND_NAMES and shape.lower() not in TYPE_NAMES:
                found.append(shape)
            return
        if not isinstance(shape, Mapping):
            return
        if str(shape.get("kind", "")).lower() == "nested" and shape.get("schema") is not None:
            found.append(shape["schema"])
        for key in ("items", "inner", "values", "keys"):
            walk(shape.get(key))
        for payload in (shape.get("variants") or {}).values():
            walk(payload, in_variant=True)

    for field_config in config.get("fields", []) or []:
        if isinstance(field_config, Mapping):
            walk(field_config.get("shape"))
    return found


def _load_source(source: Union[str, Path, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(source, Mapping):
        return source
    path = Path(source)
    try:
        config = Config(path, use_env=False)
    except DataknobsError as e:
        raise ConfigurationError(f"Cannot load configuration from {path}: {e}", context={"path": str(path)}) from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot parse {path}: {e}", context={"path": str(path)}) from e
    except (AttributeError, TypeError) as e:
        # Config expects a mapping of type names to lists of mappings
        raise ConfigurationError(
            f"Configuration root must map names to lists of mappings: {path}", context={"path": str(path)}
        ) from e
    if SCHEMAS_TYPE not in config.get_types():
        return {}
    return {SCHEMAS_TYPE: [config.get(SCHEMAS_TYPE, index) for index in range(config.get_count(SCHEMAS_TYPE))]}


def load_schemas(
    source: Union[str, Path, Mapping[str, Any]],
    functions: FunctionTable | None = None,
) -> dict[str, Schema]:
    """Load every schema from a configuration source.

    Args:
        source: A dict, or a path to a ``.yaml``/``.yml``/``.json`` file
            loaded through ``dataknobs_config.Config``, with a top-level
            ``schemas`` list
        functions: Function table for constraint lookup

    Returns:
        Schemas by name, in configuration order

    Raises:
        ConfigurationError: If the source or any schema in it is malformed
    """
    data = _load_source(source)
    configs = data.get(SCHEMAS_TYPE)
    if not isinstance(configs, list):
        raise ConfigurationError("Configuration needs a top-level 'schemas' list")
    return SchemaFactory(functions).create_many(configs)

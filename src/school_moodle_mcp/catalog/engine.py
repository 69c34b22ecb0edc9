"""
Tool catalog and argument validation.

This module loads the tool catalog (names, descriptions, input and output
JSON Schemas) from YAML, serves it for tools/list, and validates caller
arguments against the input schemas before any Moodle call is made.
"""

import logging
import os
from dataclasses import dataclass, field
from importlib import resources
from typing import Any, Optional

import jsonschema
import yaml

from ..errors import InvalidParamsError, ToolError, UnknownToolError

logger = logging.getLogger(__name__)

TOKEN_FIELD = "moodle_token"
MAX_CATALOG_BYTES = 1024 * 1024


class CatalogLoadError(Exception):
    """Raised when the catalog file cannot be read or parsed."""

    pass


class CatalogValidationError(Exception):
    """Raised when catalog content is structurally invalid."""

    pass


@dataclass(frozen=True)
class ToolDefinition:
    """Definition of a tool with its input and output contracts."""

    name: str
    description: str
    input_schema: dict[str, Any]
    output_schema: dict[str, Any] = field(default_factory=dict)

    def to_mcp(self) -> dict[str, Any]:
        """Render the definition for an MCP tools/list response."""
        result = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }
        if self.output_schema:
            result["outputSchema"] = self.output_schema
        return result


class ToolCatalog:
    """
    Immutable, ordered collection of tool definitions.

    Built once at startup; every lookup afterwards is read-only.
    """

    def __init__(self, tools: list[ToolDefinition]):
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise CatalogValidationError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

    def list_tools(self) -> list[ToolDefinition]:
        """Return all tool definitions in catalog order."""
        return list(self._tools.values())

    def get_tool(self, tool_name: str) -> Optional[ToolDefinition]:
        """Get tool definition by exact name, or None."""
        return self._tools.get(tool_name)

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self._tools

    def tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)


class CatalogLoader:
    """
    Loads and validates the tool catalog from a YAML file.

    The CatalogLoader is responsible for:
    - Reading the packaged ``tools.yaml`` or an override file
    - Validating the catalog structure and each tool entry
    - Checking every input and output schema against JSON Schema 2020-12
    """

    def __init__(self, catalog_path: Optional[str] = None):
        """
        Initialize CatalogLoader.

        Args:
            catalog_path: Path to a YAML catalog; None uses the packaged one
        """
        self.catalog_path = catalog_path or None

    def load(self) -> ToolCatalog:
        """
        Load and validate the catalog.

        Returns:
            ToolCatalog with one definition per configured tool

        Raises:
            CatalogLoadError: If the file cannot be read or parsed
            CatalogValidationError: If the content is invalid
        """
        content = self._read_catalog_text()

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise CatalogLoadError(f"Catalog contains invalid YAML syntax: {e}")

        if data is None:
            raise CatalogLoadError("Catalog file is empty")

        self._validate_catalog_structure(data)

        tools = []
        for tool_name, tool_config in data["tools"].items():
            self._validate_tool_definition(tool_name, tool_config)
            tools.append(
                ToolDefinition(
                    name=tool_name,
                    description=" ".join(tool_config["description"].split()),
                    input_schema=tool_config["args_schema"],
                    output_schema=tool_config.get("output_schema") or {},
                )
            )

        catalog = ToolCatalog(tools)
        logger.info(f"Tool catalog loaded with {len(catalog)} tools")
        return catalog

    def _read_catalog_text(self) -> str:
        if self.catalog_path is None:
            return (
                resources.files(__package__)
                .joinpath("tools.yaml")
                .read_text(encoding="utf-8")
            )

        try:
            if os.path.getsize(self.catalog_path) > MAX_CATALOG_BYTES:
                raise CatalogLoadError("Catalog file exceeds maximum size limit")
            with open(self.catalog_path, encoding="utf-8") as f:
                return f.read(MAX_CATALOG_BYTES)
        except OSError as e:
            raise CatalogLoadError(
                f"Failed to read catalog file {self.catalog_path}: {e}"
            )

    def _validate_catalog_structure(self, data: Any) -> None:
        """
        Validate the overall structure of the catalog file.

        Raises:
            CatalogValidationError: If structure is invalid
        """
        if not isinstance(data, dict):
            raise CatalogValidationError("Catalog file must contain a YAML object")

        if "tools" not in data:
            raise CatalogValidationError("Catalog file must contain 'tools' section")

        if not isinstance(data["tools"], dict) or not data["tools"]:
            raise CatalogValidationError("'tools' section must be a non-empty object")

    def _validate_tool_definition(self, tool_name: Any, tool_config: Any) -> None:
        """
        Validate a single tool entry.

        Raises:
            CatalogValidationError: If the entry is invalid
        """
        if not isinstance(tool_name, str) or not tool_name:
            raise CatalogValidationError(f"Invalid tool name: {tool_name!r}")

        if not isinstance(tool_config, dict):
            raise CatalogValidationError(
                f"Tool '{tool_name}' configuration must be an object"
            )

        for required in ("description", "args_schema"):
            if required not in tool_config:
                raise CatalogValidationError(
                    f"Tool '{tool_name}' missing required field: {required}"
                )

        if not isinstance(tool_config["description"], str):
            raise CatalogValidationError(
                f"Tool '{tool_name}' description must be a string"
            )

        args_schema = tool_config["args_schema"]
        if not isinstance(args_schema, dict):
            raise CatalogValidationError(
                f"Tool '{tool_name}' args_schema must be an object"
            )

        if TOKEN_FIELD not in args_schema.get("required", []):
            raise CatalogValidationError(
                f"Tool '{tool_name}' must require the '{TOKEN_FIELD}' argument"
            )

        schemas = [("args_schema", args_schema)]
        if tool_config.get("output_schema") is not None:
            if not isinstance(tool_config["output_schema"], dict):
                raise CatalogValidationError(
                    f"Tool '{tool_name}' output_schema must be an object"
                )
            schemas.append(("output_schema", tool_config["output_schema"]))

        for label, schema in schemas:
            try:
                jsonschema.Draft202012Validator.check_schema(schema)
            except jsonschema.SchemaError as e:
                raise CatalogValidationError(
                    f"Tool '{tool_name}' has invalid {label}: {e.message}"
                )


@dataclass(frozen=True)
class ValidatedCall:
    """Arguments that passed validation, with the token kept apart."""

    tool_name: str
    token: str
    params: dict[str, Any]


@dataclass
class ValidationResult:
    """Outcome of validating one tool call."""

    is_valid: bool
    validated_data: Optional[ValidatedCall] = None
    error: Optional[ToolError] = None


class SchemaValidator:
    """
    Validates tool arguments against JSON Schema 2020-12 definitions and
    turns validator output into one readable message.
    """

    def __init__(self) -> None:
        self._validator_class = jsonschema.Draft202012Validator

    def get_schema_errors(self, args: Any, schema: dict[str, Any]) -> list[str]:
        """
        Get list of validation error messages without raising.

        Args:
            args: Arguments to validate
            schema: JSON schema to validate against

        Returns:
            List of error messages, empty if validation passes
        """
        validator = self._validator_class(schema)
        errors = sorted(
            validator.iter_errors(args),
            key=lambda e: [str(p) for p in e.absolute_path],
        )
        return [self._describe_error(error) for error in errors]

    def validate_args(
        self, args: Any, schema: dict[str, Any], tool_name: str
    ) -> None:
        """
        Validate tool arguments against a JSON schema.

        Raises:
            InvalidParamsError: If validation fails, naming every failing field
        """
        messages = self.get_schema_errors(args, schema)
        if messages:
            raise InvalidParamsError(
                f"Tool '{tool_name}' argument validation failed: {'; '.join(messages)}"
            )

    def _describe_error(self, error: jsonschema.ValidationError) -> str:
        field_path = self._field_path(error)

        if error.validator == "required":
            missing_field = (
                error.message.split("'")[1] if "'" in error.message else "unknown"
            )
            return f"Missing required field: {missing_field}"
        elif error.validator == "type":
            expected_type = error.schema.get("type", "unknown")
            return (
                f"Field '{field_path}' has invalid type. "
                f"Expected {expected_type}, got {type(error.instance).__name__}"
            )
        elif error.validator == "minimum":
            return (
                f"Field '{field_path}' must be >= {error.validator_value}. "
                f"Got {error.instance}"
            )
        elif error.validator in ("pattern", "minLength"):
            if field_path == TOKEN_FIELD:
                return f"Field '{field_path}' must not be empty"
            return f"Field '{field_path}' is empty or malformed. Got {error.instance!r}"
        elif error.validator == "additionalProperties":
            return (
                f"Field '{field_path}' contains unexpected properties. "
                f"Only defined properties are allowed"
            )
        elif error.validator == "oneOf":
            return self._describe_one_of(error, field_path)
        return f"Field '{field_path}': {error.message}"

    def _describe_one_of(
        self, error: jsonschema.ValidationError, field_path: str
    ) -> str:
        if not error.context:
            return f"Field '{field_path}' matches more than one argument combination"

        branches: dict[int, list[str]] = {}
        for sub_error in error.context:
            branch = sub_error.relative_schema_path[0]
            if sub_error.validator == "not":
                reason = "conflicting fields present"
            else:
                reason = self._describe_error(sub_error)
            branches.setdefault(branch, []).append(reason)

        options = [
            f"option {index + 1}: {', '.join(reasons)}"
            for index, reasons in sorted(branches.items())
        ]
        return (
            f"Field '{field_path}' must match exactly one argument combination "
            f"({'; '.join(options)})"
        )

    @staticmethod
    def _field_path(error: jsonschema.ValidationError) -> str:
        if error.absolute_path:
            return ".".join(str(p) for p in error.absolute_path)
        return "root"


class InputValidator:
    """
    Validates raw tool arguments and separates the access token from the
    domain parameters. Pure: no I/O, no state besides the catalog.
    """

    def __init__(
        self, catalog: ToolCatalog, schema_validator: Optional[SchemaValidator] = None
    ):
        self.catalog = catalog
        self.schema_validator = schema_validator or SchemaValidator()

    def validate(self, tool_name: str, raw_args: Any) -> ValidationResult:
        """
        Validate arguments for a tool.

        Args:
            tool_name: Exact tool name
            raw_args: Caller-supplied arguments (None is treated as {})

        Returns:
            ValidationResult with a ValidatedCall on success or a typed error
        """
        tool = self.catalog.get_tool(tool_name)
        if tool is None:
            return ValidationResult(
                is_valid=False,
                error=UnknownToolError(f"Unknown tool: {tool_name}"),
            )

        args = {} if raw_args is None else raw_args
        if not isinstance(args, dict):
            return ValidationResult(
                is_valid=False,
                error=InvalidParamsError(
                    f"Tool '{tool_name}' arguments must be an object, "
                    f"got {type(args).__name__}"
                ),
            )

        try:
            self.schema_validator.validate_args(args, tool.input_schema, tool_name)
        except InvalidParamsError as e:
            return ValidationResult(is_valid=False, error=e)

        params = {key: _normalize_value(value) for key, value in args.items()}
        token = params.pop(TOKEN_FIELD)
        return ValidationResult(
            is_valid=True,
            validated_data=ValidatedCall(tool_name=tool_name, token=token, params=params),
        )


def _normalize_value(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value

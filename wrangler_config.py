"""
wrangler_config.py
Bundle conventions and output settings shared by every extraction stage.
"""
import os
from typing import Dict, List, Optional, Tuple

# Regex patches applied to the raw bundle before parsing.
# LimitSharing$Trigger clashes with a nested message of the same name.
DEFAULT_SOURCE_PATCHES = [
    (r"LimitSharing\$Trigger(?!Type)", "LimitSharing$TriggerType"),
]


class WranglerConfig:
    """
    Names of the builder-convention scaffolding found in the bundle, plus the
    settings used when rendering the proto3 document.
    """

    def __init__(
        self,
        spec_property: str = "internalSpec",
        defaults_property: str = "internalDefaults",
        name_property: str = "name",
        spec_suffix: str = "Spec",
        types_table: str = "TYPES",
        flags_table: str = "FLAGS",
        oneof_key: str = "__oneofs__",
        constraint_prefix: str = "__",
        external_enum_module: str = "$InternalEnum",
        package: str = "proto",
        indent_size: int = 2,
        client_label: str = "WhatsApp",
        source_patches: Optional[List[Tuple[str, str]]] = None,
    ):
        self.spec_property = spec_property
        self.defaults_property = defaults_property
        self.name_property = name_property
        self.spec_suffix = spec_suffix
        self.types_table = types_table
        self.flags_table = flags_table
        self.oneof_key = oneof_key
        self.constraint_prefix = constraint_prefix
        self.external_enum_module = external_enum_module
        self.package = package
        self.indent_size = indent_size
        self.client_label = client_label
        if source_patches is None:
            source_patches = list(DEFAULT_SOURCE_PATCHES)
        self.source_patches = source_patches

    @property
    def reserved_properties(self) -> Tuple[str, str, str]:
        """Builder metadata properties that never name a schema member."""
        return (self.spec_property, self.defaults_property, self.name_property)

    @property
    def indent(self) -> str:
        return " " * self.indent_size

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None, **overrides) -> "WranglerConfig":
        """
        Build a config, letting PW_* environment variables override the defaults.
        Keyword overrides win over both.
        """
        environ = os.environ if environ is None else environ
        values = {}
        if "PW_PACKAGE" in environ:
            values["package"] = environ["PW_PACKAGE"]
        if "PW_INDENT_SIZE" in environ:
            values["indent_size"] = int(environ["PW_INDENT_SIZE"])
        if "PW_CLIENT_LABEL" in environ:
            values["client_label"] = environ["PW_CLIENT_LABEL"]
        if "PW_SPEC_PROPERTY" in environ:
            values["spec_property"] = environ["PW_SPEC_PROPERTY"]
        values.update(overrides)
        return cls(**values)

    def __repr__(self):
        return (
            f"WranglerConfig(spec_property={self.spec_property!r}, package={self.package!r}, "
            f"indent_size={self.indent_size!r}, client_label={self.client_label!r})"
        )

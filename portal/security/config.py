from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    # "dummy": the bearer token is an integer user id (local development, tests).
    # "entra": the bearer token is an Entra ID access token.
    provider: Literal["dummy", "entra"] = "dummy"
    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"
    query_token_param: str = "access_token"


class DefaultRule(BaseModel):
    auth_required: bool = True
    required_roles: list[str] = Field(default_factory=list)


class RouteRule(BaseModel):
    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    auth_required: bool | None = None
    required_roles: list[str] = Field(default_factory=list)

    # Accept the bearer token as a query parameter as well (iframe sources
    # cannot send headers).
    allow_query_token: bool = False

    def normalized_methods(self) -> set[str]:
        return {m.upper() for m in self.methods}


class SecurityConfigModel(BaseModel):
    auth: AuthConfig = Field(default_factory=AuthConfig)
    default: DefaultRule = Field(default_factory=DefaultRule)
    routes: list[RouteRule] = Field(default_factory=list)


@dataclass(frozen=True)
class EffectiveRule:
    auth_required: bool
    required_roles: frozenset[str]
    allow_query_token: bool = False

    def roles_satisfied(self, roles: frozenset[str]) -> bool:
        """Role names compare case-insensitively."""
        if not self.required_roles:
            return True
        held = {r.casefold() for r in roles}
        return any(r.casefold() in held for r in self.required_roles)


def _path_template_to_regex(path_template: str) -> re.Pattern[str]:
    # "/reports/{id}" -> ^/reports/[^/]+$ ; "/admin/**" -> ^/admin(?:/.*)?$
    prefix_wildcard = path_template.endswith("/**")
    if prefix_wildcard:
        path_template = path_template[: -len("/**")]

    parts = re.split(r"(\{[^/]+\})", path_template)
    regex = "".join("[^/]+" if p.startswith("{") and p.endswith("}") else re.escape(p) for p in parts)
    if prefix_wildcard:
        regex += "(?:/.*)?"
    return re.compile(rf"^{regex}$")


class SecurityConfig:
    """
    Validated config plus route matching.

    Match order: exact path, then templates in file order, then the default rule.
    """

    def __init__(self, model: SecurityConfigModel):
        self.model = model

        self._exact_rules: dict[str, list[RouteRule]] = {}
        self._compiled_rules: list[tuple[re.Pattern[str], RouteRule]] = []
        for rule in self.model.routes:
            if "{" not in rule.path and not rule.path.endswith("/**"):
                self._exact_rules.setdefault(rule.path, []).append(rule)
            self._compiled_rules.append((_path_template_to_regex(rule.path), rule))

    @property
    def auth(self) -> AuthConfig:
        return self.model.auth

    def match(self, path: str, method: str) -> EffectiveRule:
        method = method.upper()
        default = self.model.default

        for candidate in self._exact_rules.get(path, []):
            if method in candidate.normalized_methods():
                return _effective(candidate, default)

        for regex, candidate in self._compiled_rules:
            if method in candidate.normalized_methods() and regex.match(path):
                return _effective(candidate, default)

        return EffectiveRule(
            auth_required=default.auth_required,
            required_roles=frozenset(default.required_roles),
        )


def _effective(rule: RouteRule, default: DefaultRule) -> EffectiveRule:
    # A rule that names roles implies authentication even under a public default.
    inferred_auth_required = default.auth_required or bool(rule.required_roles)
    return EffectiveRule(
        auth_required=inferred_auth_required if rule.auth_required is None else rule.auth_required,
        required_roles=frozenset(rule.required_roles or default.required_roles),
        allow_query_token=rule.allow_query_token,
    )


def load_security_config(path: Path) -> SecurityConfig:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "security" not in raw:
        raise ValueError(f"Missing top-level 'security' key in config: {path}")

    model = SecurityConfigModel.model_validate(raw["security"])
    return SecurityConfig(model)

"""Tests for repolens.classifier."""

from __future__ import annotations

import pytest

from repolens.classifier import ClassifierTables, FileClassifier, extension_of, path_tokens
from repolens.models import Layer, ModuleType


@pytest.mark.parametrize(
    "path",
    [
        "src/app.ts",
        "src/components/Button.tsx",
        "lib/util.py",
        "Dockerfile",
        "docs/guide.md",
        "server/main.go",
    ],
)
def test_is_analyzable_accepts_known_source(classifier: FileClassifier, path: str) -> None:
    assert classifier.is_analyzable(path)


@pytest.mark.parametrize(
    "path",
    [
        "node_modules/react/index.js",
        "dist/bundle.js",
        "src/types.d.ts",
        "static/app.min.js",
        "assets/logo.png",
        "src/vite-env.d.ts",
        "webpack.config.js",
        "package-lock.json",
        ".eslintrc.json",
        "debug.log",
        "data/export.csv",
        "src/__pycache__/module.pyc",
        "bin/tool",
    ],
)
def test_is_analyzable_rejects_excluded_paths(classifier: FileClassifier, path: str) -> None:
    assert not classifier.is_analyzable(path)


def test_is_parseable_code_limits_to_grammar_extensions(classifier: FileClassifier) -> None:
    assert classifier.is_parseable_code("src/a.ts")
    assert classifier.is_parseable_code("src/a.cjs")
    assert classifier.is_parseable_code("pkg/mod.py")
    assert not classifier.is_parseable_code("src/style.css")
    assert not classifier.is_parseable_code("README.md")
    assert not classifier.is_parseable_code("node_modules/x/index.js")


@pytest.mark.parametrize(
    "path",
    [
        "src/app.test.ts",
        "src/app.spec.jsx",
        "src/__tests__/app.js",
        "tests/test_config.py",
        "pkg/config_test.py",
        "src/main/java/UserServiceTest.java",
        "cmd/server_test.go",
        "Api.test.cs",
    ],
)
def test_is_test_recognises_common_conventions(classifier: FileClassifier, path: str) -> None:
    assert classifier.is_test(path)


def test_is_test_ignores_regular_sources(classifier: FileClassifier) -> None:
    assert not classifier.is_test("src/app.ts")
    assert not classifier.is_test("pkg/testing_utils.py")


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("src/services/userService.ts", ModuleType.SERVICE),
        ("src/controllers/user.controller.ts", ModuleType.CONTROLLER),
        ("src/components/Button.tsx", ModuleType.COMPONENT),
        ("src/pages/Home.tsx", ModuleType.PAGE),
        ("src/hooks/useAuth.ts", ModuleType.HOOK),
        ("src/useAuth.ts", ModuleType.HOOK),
        ("src/utils/format.ts", ModuleType.UTILITY),
        ("src/config/app.ts", ModuleType.CONFIG),
        ("src/index.ts", ModuleType.MODULE),
    ],
)
def test_infer_module_type(classifier: FileClassifier, path: str, expected: ModuleType) -> None:
    assert classifier.infer_module_type(path) is expected


def test_infer_module_type_prefers_service_over_component(classifier: FileClassifier) -> None:
    assert classifier.infer_module_type("src/components/authService.ts") is ModuleType.SERVICE


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("src/api/users.ts", Layer.PRESENTATION),
        ("src/services/billing.ts", Layer.BUSINESS),
        ("src/models/user.py", Layer.DATA),
        ("src/components/Button.tsx", Layer.PRESENTATION),
        ("src/store/cart.ts", Layer.BUSINESS),
        ("src/lib/math.js", Layer.UTILITY),
        ("src/constants.ts", Layer.INFRASTRUCTURE),
        ("src/middleware/auth.ts", Layer.INFRASTRUCTURE),
        ("src/index.ts", Layer.BUSINESS),
    ],
)
def test_infer_layer(classifier: FileClassifier, path: str, expected: Layer) -> None:
    assert classifier.infer_layer(path) is expected


def test_infer_layer_falls_back_to_module_type(classifier: FileClassifier) -> None:
    assert classifier.infer_layer("src/useAuth.ts", ModuleType.HOOK) is Layer.BUSINESS
    assert classifier.infer_layer("src/main.ts", ModuleType.CONFIG) is Layer.INFRASTRUCTURE


def test_classification_is_deterministic(classifier: FileClassifier) -> None:
    path = "src/components/UserCard.tsx"
    first = (classifier.infer_module_type(path), classifier.infer_layer(path), classifier.is_analyzable(path))
    second = (classifier.infer_module_type(path), classifier.infer_layer(path), classifier.is_analyzable(path))
    assert first == second


def test_custom_tables_are_honoured() -> None:
    tables = ClassifierTables(excluded_dirs=frozenset({"generated"}))
    classifier = FileClassifier(tables)

    assert not classifier.is_analyzable("generated/client.ts")
    assert classifier.is_analyzable("node_modules/pkg/index.js")


def test_tables_are_immutable() -> None:
    tables = ClassifierTables()
    with pytest.raises(TypeError):
        tables.language_by_extension[".foo"] = "foo"  # type: ignore[index]


def test_language_for_and_extension_helpers(classifier: FileClassifier) -> None:
    assert classifier.language_for("src/App.TSX") == "typescript"
    assert classifier.language_for("Dockerfile") == "dockerfile"
    assert classifier.language_for("LICENSE") is None
    assert extension_of("a/b/c.Test.JS") == ".js"
    assert extension_of(".gitignore") == ""


def test_path_tokens_split_camel_case_and_plurals() -> None:
    tokens = path_tokens("src/userProfiles/AccountService.ts")
    assert {"user", "profiles", "profile", "account", "service", "ts"} <= tokens

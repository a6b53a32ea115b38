"""
registry.py — Plugin manifest table and dependency ordering
------------------------------------------------------------
Holds the validated plugin manifests for the lifetime of the launcher and
computes the order in which they have to be installed and activated.

Ordering runs in two phases:
  1. augmentation: every scripted plugin gets an implicit edge to the loader
     plugin (CounterStrikeSharp) so the runtime is always set up first
  2. a plain post-order DFS over the augmented graph

Dependency names without a manifest are skipped while ordering; they may be
satisfied by a manual installation.
"""

from __future__ import annotations
from typing import Callable, Dict, Iterable, List, Mapping, Optional
from pydantic import ValidationError as PydanticValidationError
from .errors import PreconditionFailed, UnknownPlugin, ValidationError
from .logging_setup import get_logger
from .manifest_store import JsonManifestStore
from .models import PluginKind, PluginManifest, ServerStatus

log = get_logger("cs2.launcher.registry")


def _format_pydantic_errors(index: int, name: Optional[str], err: PydanticValidationError) -> List[str]:
    label = f"[{index}]" + (f" ({name})" if name else "")
    problems = []
    for e in err.errors():
        loc = ".".join(str(p) for p in e.get("loc", ()))
        problems.append(f"{label}{'.' + loc if loc else ''}: {e.get('msg')}")
    return problems


def parse_manifests(records: Iterable[Mapping]) -> List[PluginManifest]:
    """Validate raw manifest records. Collects every problem before failing."""
    plugins: List[PluginManifest] = []
    problems: List[str] = []
    for i, raw in enumerate(records):
        name = raw.get("name") if isinstance(raw, Mapping) else None
        try:
            plugins.append(PluginManifest.model_validate(raw))
        except PydanticValidationError as e:
            problems.extend(_format_pydantic_errors(i, name, e))

    seen: Dict[str, int] = {}
    for p in plugins:
        seen[p.name] = seen.get(p.name, 0) + 1
    for name, count in seen.items():
        if count > 1:
            problems.append(f"name: plugin name {name!r} is used {count} times, plugin names must be unique")

    if problems:
        raise ValidationError(problems)
    return plugins


def topological_order(plugins: List[PluginManifest], graph: Mapping[str, Iterable[str]]) -> List[PluginManifest]:
    """Post-order DFS in manifest order; every plugin comes after what it depends on."""
    by_name = {p.name: p for p in plugins}
    ordered: List[PluginManifest] = []
    visited: set = set()
    on_path: List[str] = []

    def visit(plugin: PluginManifest) -> None:
        if plugin.name in on_path:
            cycle = on_path[on_path.index(plugin.name):] + [plugin.name]
            raise ValidationError([f"dependency cycle: {' -> '.join(cycle)}"], message="Invalid plugin dependencies")
        if plugin.name in visited:
            return
        on_path.append(plugin.name)
        for dep in graph.get(plugin.name, ()):
            dep_plugin = by_name.get(dep)
            if dep_plugin is not None:
                visit(dep_plugin)
        on_path.pop()
        visited.add(plugin.name)
        ordered.append(plugin)

    for plugin in plugins:
        visit(plugin)
    return ordered


class PluginRegistry:
    def __init__(
        self,
        store: JsonManifestStore,
        loader_name: str,
        status_provider: Optional[Callable[[], ServerStatus]] = None,
    ):
        self.store = store
        self.loader_name = loader_name
        self.status_provider = status_provider
        self._plugins: List[PluginManifest] = []

    # ---------------- loading ----------------
    def load(self) -> List[PluginManifest]:
        self._plugins = parse_manifests(self.store.load())
        self.augment()
        log.info("Loaded %d plugin(s): %s", len(self._plugins), [p.name for p in self._plugins])
        return list(self._plugins)

    def augment(self) -> Dict[str, List[str]]:
        """Add the implicit loader edge to every scripted plugin and return the graph."""
        for p in self._plugins:
            if p.kind == PluginKind.SCRIPTED_PLUGIN:
                p.add_dependency(self.loader_name)
        return self.augmented_dependencies()

    def augmented_dependencies(self) -> Dict[str, List[str]]:
        graph: Dict[str, List[str]] = {}
        for p in self._plugins:
            deps = list(p.dependencies)
            if p.kind == PluginKind.SCRIPTED_PLUGIN and p.name != self.loader_name and self.loader_name not in deps:
                deps.append(self.loader_name)
            graph[p.name] = deps
        return graph

    def ordered_by_dependencies(self) -> List[PluginManifest]:
        return topological_order(self._plugins, self.augmented_dependencies())

    # ---------------- lookup ----------------
    def all(self) -> List[PluginManifest]:
        return list(self._plugins)

    def names(self) -> List[str]:
        return [p.name for p in self._plugins]

    def get(self, name: str) -> Optional[PluginManifest]:
        return next((p for p in self._plugins if p.name == name), None)

    def require(self, name: str) -> PluginManifest:
        plugin = self.get(name)
        if plugin is None:
            raise UnknownPlugin(f"Plugin {name!r} not found")
        return plugin

    # ---------------- mutation ----------------
    def _require_stopped(self, action: str) -> None:
        if self.status_provider is None:
            return
        status = self.status_provider()
        if status != ServerStatus.STOPPED:
            raise PreconditionFailed(f"Server must be stopped to {action} plugins (status={status.value}).")

    def add(self, plugin: PluginManifest) -> PluginManifest:
        self._require_stopped("add")
        if self.get(plugin.name) is not None:
            raise ValidationError([f"name: plugin name {plugin.name!r} already exists"])
        if plugin.kind == PluginKind.SCRIPTED_PLUGIN:
            plugin.add_dependency(self.loader_name)
        self._plugins.append(plugin)
        self.persist()
        log.info("Added plugin %s", plugin.name)
        return plugin

    def update(self, plugin: PluginManifest) -> PluginManifest:
        """Replace the manifest with the same name, or append it when new."""
        self._require_stopped("update")
        if plugin.kind == PluginKind.SCRIPTED_PLUGIN:
            plugin.add_dependency(self.loader_name)
        for i, existing in enumerate(self._plugins):
            if existing.name == plugin.name:
                self._plugins[i] = plugin
                break
        else:
            self._plugins.append(plugin)
        self.persist()
        log.info("Updated plugin %s", plugin.name)
        return plugin

    def remove(self, name: str) -> PluginManifest:
        self._require_stopped("remove")
        plugin = self.require(name)
        self._plugins.remove(plugin)
        self.persist()
        log.info("Removed plugin %s", name)
        return plugin

    def persist(self) -> None:
        self.store.save([p.to_record() for p in self._plugins])

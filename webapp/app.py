from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from staffing_grid.io_utils import load_config, load_seed, parse_effort
from staffing_grid.materializer import filter_options, materialize, utilization_summary
from staffing_grid.models import AllocationCell, Filter, Forest, GridConfig, GroupNode, ResourceNode, Row
from staffing_grid.mutator import AllocationMutator, SaveAssignment
from staffing_grid.store import ForestPair, ResourceTreeStore, searchable_items

logger = logging.getLogger(__name__)

VIEWS = ("people", "projects")


def _default_portfolio_dir() -> Path:
    return (Path(__file__).resolve().parent.parent / "portfolios" / "sample").resolve()


def _resolve_portfolio_dir() -> Path:
    env_value = os.getenv("PORTFOLIO_DIR")
    if env_value:
        return Path(env_value).expanduser().resolve()
    return _default_portfolio_dir()


def _load_portfolio(portfolio_dir: Path) -> tuple[ResourceTreeStore, GridConfig]:
    input_dir = portfolio_dir / "input"
    config = load_config(input_dir / "config.json")
    return load_seed(input_dir / "seed.json", config), config


def _cell_to_dict(cell: AllocationCell) -> Dict[str, object]:
    return {"effort": cell.effort, "capacity": cell.capacity, "status": cell.status}


def _node_to_dict(node: ResourceNode) -> Dict[str, object]:
    return {
        "id": node.id,
        "entity_id": node.entity_id,
        "parent_id": node.parent_id,
        "name": node.name,
        "kind": node.kind,
        "subtext": node.subtext,
        "manager": node.manager,
        "department": node.department,
        "skills": list(node.skills),
        "status": node.status,
        "role": node.role,
        "allocations": {month: _cell_to_dict(cell) for month, cell in node.allocations.items()},
        "children": [_node_to_dict(child) for child in node.children],
    }


def _row_to_dict(row: Row, months: Sequence[str]) -> Dict[str, object]:
    payload: Dict[str, object] = {
        "key": row.key,
        "type": row.kind,
        "depth": row.depth,
        "is_group_header": row.is_group_header,
        "parent_id": row.parent_id,
    }
    node = row.node
    if isinstance(node, GroupNode):
        payload.update({"id": node.id, "name": node.name, "subtext": node.subtext, "kind": "group"})
    elif isinstance(node, ResourceNode):
        payload.update(
            {
                "id": node.id,
                "name": node.name,
                "subtext": node.subtext,
                "kind": node.kind,
                "cells": {
                    month: _cell_to_dict(node.allocations[month])
                    for month in months
                    if month in node.allocations
                },
            }
        )
    return payload


def _forests_to_dict(forests: ForestPair) -> Dict[str, object]:
    return {
        "people": [_node_to_dict(node) for node in forests.people],
        "projects": [_node_to_dict(node) for node in forests.projects],
    }


def _parse_view(raw: Optional[str]) -> Forest:
    view = (raw or "people").lower()
    if view not in VIEWS:
        raise ValueError(f"unsupported view '{raw}'")
    return view  # type: ignore[return-value]


def _parse_filter_args(raw_filters: List[str]) -> List[Filter]:
    filters: List[Filter] = []
    for raw in raw_filters:
        key, sep, values = raw.partition(":")
        if not sep:
            raise ValueError(f"filter must look like key:v1,v2: '{raw}'")
        filters.append(Filter(key=key.strip().lower(), values=tuple(v.strip() for v in values.split(",") if v.strip())))
    return filters


def _focus_months(raw_indices: List[str], visible: Sequence[str]) -> List[str]:
    focus: List[str] = []
    for raw in raw_indices:
        try:
            idx = int(raw)
        except ValueError as exc:
            raise ValueError(f"month index must be an integer: '{raw}'") from exc
        if not 0 <= idx < len(visible):
            raise ValueError(f"month index {idx} is outside the visible range")
        focus.append(visible[idx])
    return focus


def _months_arg(data: Dict[str, object], config: GridConfig) -> List[str]:
    months = data.get("months") or []
    month = data.get("month")
    if not isinstance(months, list):
        raise ValueError("months must be an array")
    labels = [str(m) for m in months] or ([str(month)] if month else [])
    for label in labels:
        config.month_index(label)
    return labels


def _new_item(raw: object) -> Optional[ResourceNode]:
    if raw is None:
        return None
    if not isinstance(raw, dict) or not raw.get("id") or not raw.get("name"):
        raise ValueError("new_item requires id and name")
    kind = raw.get("kind", "work_item")
    if kind not in ("person", "work_item"):
        raise ValueError(f"unsupported new_item kind '{kind}'")
    return ResourceNode(
        entity_id=str(raw["id"]),
        name=str(raw["name"]),
        kind=kind,
        subtext=str(raw.get("subtext", "") or ""),
        department=raw.get("department") or None,
        manager=raw.get("manager") or None,
    )


def create_app(store: Optional[ResourceTreeStore] = None, config: Optional[GridConfig] = None) -> Flask:
    app = Flask(__name__)
    if store is None or config is None:
        loaded_store, loaded_config = _load_portfolio(_resolve_portfolio_dir())
        store = store or loaded_store
        config = config or loaded_config
    mutator = AllocationMutator(store, default_capacity=config.default_capacity)
    app.config["STORE"] = store
    app.config["GRID_CONFIG"] = config
    app.config["MUTATOR"] = mutator

    @app.errorhandler(ValueError)
    def invalid_request(exc: ValueError):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(Exception)
    def unexpected_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return jsonify({"error": exc.description}), exc.code
        logger.exception("unhandled error in staffing grid shell")
        return jsonify({"error": "unexpected error", "reload": True}), 500

    @app.get("/api/months")
    def months():
        return jsonify({"months": list(config.months), "time_ranges": ["3M", "6M", "9M"]})

    @app.get("/api/rows")
    def rows():
        view = _parse_view(request.args.get("view"))
        visible = config.visible_months(request.args.get("time_range", "9M"))
        expanded = {node_id: True for node_id in request.args.getlist("expand")}
        focus = _focus_months(request.args.getlist("month"), visible)
        materialized = materialize(
            store.forest(view),
            _parse_filter_args(request.args.getlist("filter")),
            request.args.get("group_by"),
            visible,
            view=view,
            config=config,
            expanded=expanded,
            dealfolders=store.dealfolders,
            focus_months=focus,
        )
        return jsonify({"months": list(visible), "rows": [_row_to_dict(row, visible) for row in materialized]})

    @app.get("/api/stats")
    def stats():
        view = _parse_view(request.args.get("view"))
        visible = config.visible_months(request.args.get("time_range", "9M"))
        summary = utilization_summary(store.forest(view), visible, config)
        return jsonify({bucket: [node.id for node in members] for bucket, members in summary.items()})

    @app.get("/api/filters/<category>")
    def filters(category: str):
        view = _parse_view(request.args.get("view"))
        visible = config.visible_months(request.args.get("time_range", "9M"))
        values = filter_options(
            store.forest(view),
            category,
            _parse_filter_args(request.args.getlist("filter")),
            visible,
            config,
        )
        return jsonify({"category": category, "values": values})

    @app.get("/api/search")
    def search():
        term = (request.args.get("q") or "").strip().lower()
        items = searchable_items(store.people, store.projects)
        if term:
            items = [
                item for item in items
                if term in str(item["name"]).lower() or term in str(item["subtext"]).lower()
            ]
        return jsonify(items)

    @app.post("/api/assignments")
    def save_assignment():
        data = request.get_json(silent=True) or {}
        if not data.get("resource_id"):
            raise ValueError("resource_id is required")
        mode = data.get("mode", "edit")
        if mode not in ("add", "edit"):
            raise ValueError(f"unsupported mode '{mode}'")
        months = _months_arg(data, config)
        payload = SaveAssignment(
            mode=mode,
            resource_id=str(data["resource_id"]),
            parent_id=data.get("parent_id") or None,
            months=tuple(months),
            effort=parse_effort(data.get("effort")),
            new_item=_new_item(data.get("new_item")),
            role=data.get("role") or None,
            is_capacity_edit=bool(data.get("is_capacity_edit", False)),
            view=_parse_view(data.get("view")),
        )
        return jsonify(_forests_to_dict(mutator.save_assignment(payload)))

    @app.delete("/api/assignments")
    def delete_assignment():
        data = request.get_json(silent=True) or {}
        if not data.get("resource_id"):
            raise ValueError("resource_id is required")
        forests = mutator.delete_allocation(
            str(data["resource_id"]),
            data.get("parent_id") or None,
            months=_months_arg(data, config),
            view=_parse_view(data.get("view")),
        )
        return jsonify(_forests_to_dict(forests))

    @app.post("/api/inline")
    def inline_save():
        data = request.get_json(silent=True) or {}
        if not data.get("resource_id") or not data.get("month"):
            raise ValueError("resource_id and month are required")
        month = str(data["month"])
        config.month_index(month)
        forests = mutator.inline_save(
            str(data["resource_id"]),
            month,
            parse_effort(data.get("value")),
            bool(data.get("is_capacity", False)),
            view=_parse_view(data.get("view")),
        )
        return jsonify(_forests_to_dict(forests))

    @app.post("/api/capacity")
    def update_capacity():
        data = request.get_json(silent=True) or {}
        if not data.get("resource_id") or not data.get("month"):
            raise ValueError("resource_id and month are required")
        month = str(data["month"])
        config.month_index(month)
        view = data.get("view")
        forests = mutator.update_capacity(
            str(data["resource_id"]),
            month,
            parse_effort(data.get("capacity")),
            forest=_parse_view(view) if view else None,
        )
        return jsonify(_forests_to_dict(forests))

    return app


if __name__ == "__main__":
    create_app().run(debug=False)

"""Lookups and deletes that work on any entity id."""

from __future__ import annotations

from ..store import EntityRef, Storage
from .tickets import delete_ticket


def describe_entity(ref: EntityRef) -> dict:
    """Short description of a found entity: id, kind and its human label."""
    entity = ref.entity
    label = getattr(entity, "title", None) or getattr(entity, "name", None) or getattr(entity, "username", "")
    return {"id": entity.id, "kind": ref.singular, "label": label}


def find_entity(storage: Storage, entity_id: str) -> dict:
    ref = storage.find_entity(entity_id)
    if not ref:
        return {"error": "not_found", "message": f"No entity found with ID '{entity_id}'"}
    return {"entity": describe_entity(ref), "record": ref.entity.to_dict()}


def delete_entity(storage: Storage, entity_id: str) -> dict:
    """Delete whatever ``entity_id`` names. Tickets take their comments with them."""
    ref = storage.find_entity(entity_id)
    if not ref:
        return {"error": "not_found", "message": f"No entity found with ID '{entity_id}'"}

    if ref.kind in ("tasks", "bugs"):
        result = delete_ticket(storage, entity_id)
        if "error" not in result:
            result["entity"] = describe_entity(ref)
        return result

    if not storage.delete_entity(ref.kind, entity_id):
        return {"error": "not_found", "message": f"No entity found with ID '{entity_id}'"}
    return {"success": True, "entity": describe_entity(ref)}

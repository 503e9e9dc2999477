# Overview: Flask API routes for client pets; parses input and returns JSON responses.

from flask import Blueprint, request, current_app, g

from ..extensions import db
from ..services import pet_service
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth


pets_bp = Blueprint("pets", __name__, url_prefix="/api/client/pets")


@pets_bp.get("")
@require_auth
def list_pets_route():
    return {"pets": pet_service.list_pets(g.current_user.id)}


@pets_bp.get("/<int:pet_id>")
@require_auth
def get_pet_route(pet_id: int):
    try:
        pet = pet_service.get_owned_pet(g.current_user, pet_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"pet": pet.to_dict()}


@pets_bp.post("")
@require_auth
def create_pet_route():
    """
    Register a pet.

    Required: name, species, birth_date, gender. A blank microchip id is
    stored as null; a used one is rejected with 409.
    """
    payload = request.get_json(silent=True) or {}
    try:
        pet = pet_service.create_pet(g.current_user, payload)
    except ConflictError as e:
        db.session.rollback()
        return {"error": str(e)}, 409
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create pet")
        return {"error": "Internal server error"}, 500

    return {"message": "Pet added successfully", "pet": pet.to_dict()}, 201


@pets_bp.put("/<int:pet_id>")
@require_auth
def update_pet_route(pet_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        pet = pet_service.update_pet(g.current_user, pet_id, payload)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        db.session.rollback()
        return {"error": str(e)}, 409
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update pet %s", pet_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Pet updated successfully", "pet": pet.to_dict()}


@pets_bp.delete("/<int:pet_id>")
@require_auth
def delete_pet_route(pet_id: int):
    try:
        pet_service.delete_pet(g.current_user, pet_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete pet %s", pet_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Pet deleted successfully"}


@pets_bp.get("/<int:pet_id>/appointments")
@require_auth
def pet_appointments_route(pet_id: int):
    try:
        pet = pet_service.get_owned_pet(g.current_user, pet_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"appointments": pet_service.pet_appointments(pet)}


@pets_bp.get("/<int:pet_id>/medical-records")
@require_auth
def pet_medical_records_route(pet_id: int):
    try:
        pet = pet_service.get_owned_pet(g.current_user, pet_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"medical_records": pet_service.pet_medical_records(pet)}


@pets_bp.get("/<int:pet_id>/transactions")
@require_auth
def pet_transactions_route(pet_id: int):
    try:
        pet = pet_service.get_owned_pet(g.current_user, pet_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"transactions": pet_service.pet_transactions(pet)}

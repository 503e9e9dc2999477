"""
Pet and service catalog tests.

Verifies:
- Pet CRUD scoped to the owner, microchip uniqueness (409), blank chips
- Category/service validation and in-use deletion guards
- Client catalogue shows active services only
"""

import pytest

from pawpal.models import Category, Pet, Service


# =============================================================================
# PETS
# =============================================================================


class TestPets:

    def _create(self, client, headers, **overrides):
        payload = {
            "name": "Kuro",
            "species": "cat",
            "breed": "Puspin",
            "birth_date": "2022-02-14",
            "gender": "male",
            "weight": 4.2,
        }
        payload.update(overrides)
        return client.post("/api/client/pets", headers=headers, json=payload)

    def test_create_pet(self, client, client_headers, client_user):
        resp = self._create(client, client_headers)
        assert resp.status_code == 201
        assert resp.json["message"] == "Pet added successfully"
        pet = resp.json["pet"]
        assert pet["user_id"] == client_user.id
        assert pet["birth_date"] == "2022-02-14"
        assert pet["weight"] == 4.2

    @pytest.mark.parametrize("missing", ["name", "species", "birth_date", "gender"])
    def test_required_fields(self, client, client_headers, missing):
        resp = self._create(client, client_headers, **{missing: ""})
        assert resp.status_code == 400
        assert resp.json["error"] == "Missing required fields"

    def test_invalid_birth_date(self, client, client_headers):
        resp = self._create(client, client_headers, birth_date="14/02/2022")
        assert resp.status_code == 400

    def test_duplicate_microchip_conflicts(self, client, client_headers, other_headers):
        assert self._create(client, client_headers, microchip_id="985112000123456").status_code == 201

        resp = self._create(client, other_headers, name="Shiro", microchip_id="985112000123456")
        assert resp.status_code == 409
        assert resp.json["error"] == "A pet with this microchip ID already exists"

    def test_blank_microchips_do_not_collide(self, client, client_headers, db_session):
        assert self._create(client, client_headers, microchip_number="").status_code == 201
        assert self._create(client, client_headers, name="Shiro", microchip_number="  ").status_code == 201
        assert db_session.query(Pet).filter(Pet.microchip_number.is_(None)).count() == 2

    def test_list_only_own_pets(self, client, client_headers, other_headers, pet):
        self._create(client, other_headers, name="Neighbour")

        resp = client.get("/api/client/pets", headers=client_headers)
        assert [p["name"] for p in resp.json["pets"]] == ["Mochi"]

    def test_update_pet(self, client, client_headers, pet):
        resp = client.put(f"/api/client/pets/{pet.id}", headers=client_headers, json={"weight": 6.5, "medical_notes": "Allergic to chicken"})
        assert resp.status_code == 200
        assert resp.json["pet"]["weight"] == 6.5
        assert resp.json["pet"]["notes"] == "Allergic to chicken"

    def test_update_cannot_blank_name(self, client, client_headers, pet):
        resp = client.put(f"/api/client/pets/{pet.id}", headers=client_headers, json={"name": ""})
        assert resp.status_code == 400

    def test_cannot_delete_boarding_pet(self, client, client_headers, pet, cage, db_session):
        cage.status = "occupied"
        cage.current_pet_id = pet.id
        db_session.commit()

        resp = client.delete(f"/api/client/pets/{pet.id}", headers=client_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Cannot delete a pet that is currently boarding"

    def test_delete_pet(self, client, client_headers, pet, db_session):
        resp = client.delete(f"/api/client/pets/{pet.id}", headers=client_headers)
        assert resp.status_code == 200
        db_session.expire_all()
        assert db_session.get(Pet, pet.id) is None

    def test_pet_history_endpoints(self, client, client_headers, pet):
        for suffix, key in (
            ("appointments", "appointments"),
            ("medical-records", "medical_records"),
            ("transactions", "transactions"),
        ):
            resp = client.get(f"/api/client/pets/{pet.id}/{suffix}", headers=client_headers)
            assert resp.status_code == 200
            assert resp.json[key] == []

    def test_staff_can_view_client_pets(self, client, admin_headers, client_user, pet):
        resp = client.get(f"/api/admin/users/{client_user.id}/pets", headers=admin_headers)
        assert resp.status_code == 200
        assert [p["id"] for p in resp.json["pets"]] == [pet.id]


# =============================================================================
# CATEGORIES
# =============================================================================


class TestCategories:

    def test_create_category(self, client, admin_headers):
        resp = client.post("/api/admin/categories", headers=admin_headers, json={
            "name": "Dental",
            "color": "#f59e0b",
            "icon": "tooth",
        })
        assert resp.status_code == 201
        assert resp.json["category"]["name"] == "Dental"
        assert resp.json["category"]["is_active"] is True

    def test_duplicate_name(self, client, admin_headers, grooming_service):
        resp = client.post("/api/admin/categories", headers=admin_headers, json={"name": "Grooming"})
        assert resp.status_code == 400
        assert resp.json["error"] == "Category name already exists"

    def test_name_required(self, client, admin_headers):
        resp = client.post("/api/admin/categories", headers=admin_headers, json={"name": "  "})
        assert resp.status_code == 400
        assert resp.json["error"] == "Category name is required"

    def test_cannot_delete_category_in_use(self, client, admin_headers, grooming_service):
        resp = client.delete(f"/api/admin/categories/{grooming_service.category_id}", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Cannot delete category. It is being used by 1 service(s)."

    def test_list_includes_service_count(self, client, admin_headers, grooming_service):
        resp = client.get("/api/admin/categories", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["categories"][0]["service_count"] == 1

    def test_delete_unused_category(self, client, admin_headers, db_session):
        category = Category(name="Vaccination")
        db_session.add(category)
        db_session.commit()

        resp = client.delete(f"/api/admin/categories/{category.id}", headers=admin_headers)
        assert resp.status_code == 200


# =============================================================================
# SERVICES
# =============================================================================


class TestServices:

    def test_create_service(self, client, admin_headers, grooming_service):
        resp = client.post("/api/admin/services", headers=admin_headers, json={
            "category_id": grooming_service.category_id,
            "name": "Nail Trim",
            "price": 150,
            "duration_minutes": 15,
        })
        assert resp.status_code == 201
        assert resp.json["service"]["category_name"] == "Grooming"
        assert resp.json["service"]["is_boarding"] is False

    @pytest.mark.parametrize(
        "field,value,message",
        [
            ("price", 0, "Valid price is required"),
            ("price", "free", "Valid price is required"),
            ("duration_minutes", -5, "Valid duration is required"),
            ("category_id", 9999, "Invalid or inactive category selected"),
        ],
    )
    def test_invalid_service(self, client, admin_headers, grooming_service, field, value, message):
        payload = {
            "category_id": grooming_service.category_id,
            "name": "Bath",
            "price": 200,
            "duration_minutes": 30,
        }
        payload[field] = value
        resp = client.post("/api/admin/services", headers=admin_headers, json=payload)
        assert resp.status_code == 400
        assert resp.json["error"] == message

    def test_boarding_flag_from_category(self, client, admin_headers, boarding_service):
        resp = client.get(f"/api/admin/services/{boarding_service.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["service"]["is_boarding"] is True

    def test_cannot_delete_booked_service(
        self, client, admin_headers, client_headers, pet, grooming_service
    ):
        client.post("/api/client/appointments", headers=client_headers, json={
            "pet_ids": [pet.id],
            "service_id": grooming_service.id,
            "appointment_date": "2031-01-01",
            "payment_method": "cash",
        })
        resp = client.delete(f"/api/admin/services/{grooming_service.id}", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Cannot delete service that is being used in appointments"

    def test_client_catalogue_hides_inactive(self, client, client_headers, grooming_service, boarding_service, db_session):
        grooming_service.is_active = False
        db_session.commit()

        resp = client.get("/api/client/services", headers=client_headers)
        assert resp.status_code == 200
        assert [s["name"] for s in resp.json["services"]] == ["Overnight Boarding"]

    def test_inactive_service_cannot_be_booked(self, client, client_headers, pet, grooming_service, db_session):
        grooming_service.is_active = False
        db_session.commit()

        resp = client.post("/api/client/appointments", headers=client_headers, json={
            "pet_ids": [pet.id],
            "service_id": grooming_service.id,
            "appointment_date": "2031-01-01",
            "payment_method": "cash",
        })
        assert resp.status_code == 400
        assert resp.json["error"] == "Service is not available"
        assert db_session.query(Service).count() == 1

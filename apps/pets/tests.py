import pytest
from unittest.mock import patch

from botocore.exceptions import ClientError
from django.core.files.uploadedfile import SimpleUploadedFile

from apps.pets.models import Pet

API_PREFIX = "/api/v1"


def photo(name="rex.png", content_type="image/png", size=128):
    return SimpleUploadedFile(name, b"\x89PNG" + b"0" * size, content_type=content_type)


@pytest.mark.django_db
def test_clients_see_only_their_pets(pet_rex, pet_luna, client_x, api_client):
    resp = api_client(client_x.user).get(f"{API_PREFIX}/pets/")
    assert resp.status_code == 200
    assert [p["name"] for p in resp.json()["results"]] == ["Rex"]

    resp = api_client(client_x.user).get(f"{API_PREFIX}/pets/{pet_luna.pk}/")
    assert resp.status_code == 404


@pytest.mark.django_db
def test_admin_sees_all_pets_and_filters_by_owner(pet_rex, pet_luna, client_y, admin_user, api_client):
    resp = api_client(admin_user).get(f"{API_PREFIX}/pets/")
    assert resp.json()["count"] == 2

    resp = api_client(admin_user).get(f"{API_PREFIX}/pets/?owner={client_y.pk}")
    assert [p["owner_name"] for p in resp.json()["results"]] == ["Client Y"]


@pytest.mark.django_db
def test_client_registers_pet_for_self(client_x, client_y, api_client):
    resp = api_client(client_x.user).post(
        f"{API_PREFIX}/pets/",
        {"name": "Bolt", "breed": "Beagle", "owner": client_y.pk, "weight": "11.20"},
        format="json",
    )
    assert resp.status_code == 201
    assert Pet.objects.get(pk=resp.json()["id"]).owner == client_x


@pytest.mark.django_db
def test_admin_must_select_owner(client_y, admin_user, api_client):
    resp = api_client(admin_user).post(f"{API_PREFIX}/pets/", {"name": "Bolt"}, format="json")
    assert resp.status_code == 400
    assert "owner" in resp.json()

    resp = api_client(admin_user).post(
        f"{API_PREFIX}/pets/", {"name": "Bolt", "owner": client_y.pk}, format="json"
    )
    assert resp.status_code == 201
    assert resp.json()["owner"] == client_y.pk


@pytest.mark.django_db
def test_pet_without_profile_is_forbidden(make_user, api_client):
    resp = api_client(make_user("newcomer")).post(f"{API_PREFIX}/pets/", {"name": "Bolt"}, format="json")
    assert resp.status_code == 403


@pytest.mark.django_db
def test_client_cannot_move_pet_to_another_owner(pet_rex, client_x, client_y, api_client):
    resp = api_client(client_x.user).patch(
        f"{API_PREFIX}/pets/{pet_rex.pk}/", {"owner": client_y.pk, "color": "white"}, format="json"
    )
    assert resp.status_code == 200
    pet_rex.refresh_from_db()
    assert pet_rex.owner == client_x
    assert pet_rex.color == "white"


@pytest.mark.django_db
def test_negative_weight_rejected(client_x, api_client):
    resp = api_client(client_x.user).post(
        f"{API_PREFIX}/pets/", {"name": "Bolt", "weight": "-1.00"}, format="json"
    )
    assert resp.status_code == 400


@pytest.mark.django_db
def test_photo_upload(settings, pet_rex, client_x, api_client):
    settings.PET_PHOTOS_BUCKET = "pet-photos"
    settings.AWS_REGION = "us-east-1"

    with patch("apps.pets.storage.s3") as s3:
        resp = api_client(client_x.user).post(
            f"{API_PREFIX}/pets/{pet_rex.pk}/photo/", {"photo": photo()}, format="multipart"
        )

    assert resp.status_code == 200
    kwargs = s3.put_object.call_args.kwargs
    assert kwargs["Bucket"] == "pet-photos"
    assert kwargs["Key"].startswith(f"{client_x.pk}/{pet_rex.pk}/")
    assert kwargs["Key"].endswith(".png")
    assert kwargs["ContentType"] == "image/png"

    pet_rex.refresh_from_db()
    assert pet_rex.photo_url == f"https://pet-photos.s3.us-east-1.amazonaws.com/{kwargs['Key']}"
    assert resp.json()["photo_url"] == pet_rex.photo_url


@pytest.mark.django_db
def test_photo_upload_rejects_non_images(pet_rex, client_x, api_client):
    with patch("apps.pets.storage.s3") as s3:
        resp = api_client(client_x.user).post(
            f"{API_PREFIX}/pets/{pet_rex.pk}/photo/",
            {"photo": photo(name="notes.txt", content_type="text/plain")},
            format="multipart",
        )
    assert resp.status_code == 400
    s3.put_object.assert_not_called()


@pytest.mark.django_db
def test_photo_upload_rejects_large_files(settings, pet_rex, client_x, api_client):
    settings.PET_PHOTOS_MAX_BYTES = 64
    with patch("apps.pets.storage.s3") as s3:
        resp = api_client(client_x.user).post(
            f"{API_PREFIX}/pets/{pet_rex.pk}/photo/", {"photo": photo(size=256)}, format="multipart"
        )
    assert resp.status_code == 400
    s3.put_object.assert_not_called()


@pytest.mark.django_db
def test_photo_upload_storage_failure(pet_rex, client_x, api_client):
    error = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
    with patch("apps.pets.storage.s3") as s3:
        s3.put_object.side_effect = error
        resp = api_client(client_x.user).post(
            f"{API_PREFIX}/pets/{pet_rex.pk}/photo/", {"photo": photo()}, format="multipart"
        )
    assert resp.status_code == 503
    pet_rex.refresh_from_db()
    assert pet_rex.photo_url == ""


@pytest.mark.django_db
def test_photo_upload_for_other_clients_pet(pet_luna, client_x, api_client):
    with patch("apps.pets.storage.s3") as s3:
        resp = api_client(client_x.user).post(
            f"{API_PREFIX}/pets/{pet_luna.pk}/photo/", {"photo": photo()}, format="multipart"
        )
    assert resp.status_code == 404
    s3.put_object.assert_not_called()

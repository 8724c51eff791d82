"""Teacher and generic user provisioning."""

from io import BytesIO

import pytest
from httpx import AsyncClient
from openpyxl import Workbook

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

ANITA = {"first_name": "Anita", "last_name": "Kulkarni", "dob": "1985-04-23"}


def xlsx_file(rows, name: str = "staff.xlsx"):
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = BytesIO()
    wb.save(buf)
    return {"file": (name, buf.getvalue(), XLSX)}


@pytest.mark.asyncio
async def test_create_teacher(client: AsyncClient, admin_headers, department) -> None:
    res = await client.post(
        "/api/v1/teachers",
        json={**ANITA, "role": "HOD", "department_id": str(department.id), "gender": "Female"},
        headers=admin_headers,
    )
    assert res.status_code == 201
    data = res.json()
    assert data["credentials"] == [
        {
            "full_name": "Anita Kulkarni",
            "username": "anitakulkarni1985",
            "password": "anita230485",
            "role": "hod",
            "must_change_password": True,
        }
    ]
    assert data["person"]["role"] == "hod"
    assert data["person"]["gender"] == "female"
    assert data["person"]["department_id"] == str(department.id)


@pytest.mark.asyncio
async def test_teacher_role_defaults_and_limits(client: AsyncClient, admin_headers) -> None:
    res = await client.post("/api/v1/teachers", json=ANITA, headers=admin_headers)
    assert res.status_code == 201
    assert res.json()["person"]["role"] == "teacher"

    admin = await client.post("/api/v1/teachers", json={**ANITA, "role": "admin"}, headers=admin_headers)
    assert admin.status_code == 422


@pytest.mark.asyncio
async def test_reset_teacher_password(client: AsyncClient, admin_headers) -> None:
    created = await client.post("/api/v1/teachers", json=ANITA, headers=admin_headers)
    teacher_id = created.json()["person"]["id"]

    res = await client.post(f"/api/v1/teachers/{teacher_id}/reset-password", headers=admin_headers)
    assert res.status_code == 200
    assert [(c["username"], c["password"]) for c in res.json()["credentials"]] == [
        ("anitakulkarni1985", "anita230485")
    ]


@pytest.mark.asyncio
async def test_teacher_reset_does_not_touch_students(client: AsyncClient, admin_headers) -> None:
    student = await client.post(
        "/api/v1/students",
        json={"first_name": "Asha", "last_name": "Rao", "dob": "2004-03-07"},
        headers=admin_headers,
    )
    student_id = student.json()["person"]["id"]

    res = await client.post(f"/api/v1/teachers/{student_id}/reset-password", headers=admin_headers)
    assert res.status_code == 404
    assert res.json()["detail"] == "Teacher not found"


@pytest.mark.asyncio
async def test_bulk_upload_teachers(client: AsyncClient, admin_headers, department) -> None:
    files = xlsx_file(
        [
            ["firstName", "lastName", "dob", "role", "departmentCode", "phone"],
            ["Anita", "Kulkarni", "1985-04-23", "teacher", "COMP", 9876543210],
            ["Rahul", "Joshi", "1980-12-01", "principal", "COMP", None],
            ["Meera", "Nair", "1979-07-15", "ClassCoordinator", "NOPE", None],
            ["Vikram", "Shah", "1982-02-02", None, "COMP", None],
        ]
    )
    res = await client.post("/api/v1/teachers/bulk-upload", files=files, headers=admin_headers)
    assert res.status_code == 200
    data = res.json()
    assert data["success_count"] == 2
    assert [e["row_number"] for e in data["errors"]] == [2, 3]
    assert data["errors"][1]["error"] == "Department not found: NOPE"
    assert [(c["username"], c["role"]) for c in data["credentials"]] == [
        ("anitakulkarni1985", "teacher"),
        ("vikramshah1982", "teacher"),
    ]


@pytest.mark.asyncio
async def test_create_user_parent_uses_own_birth_year(client: AsyncClient, admin_headers) -> None:
    res = await client.post(
        "/api/v1/users",
        json={"first_name": "Ramesh", "last_name": "Dicholkar", "mother_name": "Sunita", "dob": "1975-06-01", "role": "parent"},
        headers=admin_headers,
    )
    assert res.status_code == 201
    assert [(c["username"], c["password"]) for c in res.json()["credentials"]] == [
        ("rameshdicholkarsunita1975", "ramesh010675")
    ]


@pytest.mark.asyncio
async def test_create_user_student_has_no_class(client: AsyncClient, admin_headers) -> None:
    res = await client.post(
        "/api/v1/users",
        json={**ANITA, "role": "Student"},
        headers=admin_headers,
    )
    assert res.status_code == 201
    person = res.json()["person"]
    assert person["role"] == "student"
    assert person["class_id"] is None
    assert person["year"] == 1


@pytest.mark.asyncio
async def test_create_user_rejects_admin_role(client: AsyncClient, admin_headers) -> None:
    res = await client.post("/api/v1/users", json={**ANITA, "role": "admin"}, headers=admin_headers)
    assert res.status_code == 422


@pytest.mark.asyncio
async def test_bulk_upload_users(client: AsyncClient, admin_headers) -> None:
    files = xlsx_file(
        [
            ["firstName", "lastName", "dob", "role"],
            ["Anita", "Kulkarni", "1985-04-23", "hod"],
            ["Anita", "Kulkarni", "1985-04-23", "classcoordinator"],
            ["Nobody", "Known", "1990-01-01", "janitor"],
        ]
    )
    res = await client.post("/api/v1/users/bulk-upload", files=files, headers=admin_headers)
    assert res.status_code == 200
    data = res.json()
    assert data["success_count"] == 2
    assert data["failed_count"] == 1
    assert data["errors"][0]["row_number"] == 3
    assert [c["username"] for c in data["credentials"]] == ["anitakulkarni1985", "anitakulkarni19852"]


@pytest.mark.asyncio
async def test_reset_user_password(client: AsyncClient, admin_headers) -> None:
    created = await client.post("/api/v1/users", json={**ANITA, "role": "teacher"}, headers=admin_headers)
    user_id = created.json()["person"]["id"]

    res = await client.post(f"/api/v1/users/{user_id}/reset-password", headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["credentials"][0]["password"] == "anita230485"


@pytest.mark.asyncio
async def test_parent_reset_derives_from_linked_student(client: AsyncClient, admin_headers) -> None:
    created = await client.post(
        "/api/v1/students",
        json={"first_name": "Siddhesh", "father_name": "Ramesh", "last_name": "Dicholkar", "dob": "2005-09-11"},
        headers=admin_headers,
    )
    parent_id = created.json()["person"]["parent_id"]

    res = await client.post(f"/api/v1/users/{parent_id}/reset-password", headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["credentials"] == [
        {
            "full_name": "Ramesh Dicholkar",
            "username": "rameshdicholkar2005",
            "password": "siddhesh110905",
            "role": "parent",
            "must_change_password": True,
        }
    ]

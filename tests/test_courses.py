import uuid

from tests.conftest import auth_headers


async def test_course_and_unit_catalogue(client, admin, teacher, students):
    response = await client.post(
        "/course/createCourse", json={"code": "SE", "name": "Software Engineering"}, headers=auth_headers(admin),
    )
    assert response.status_code == 201
    course_id = response.json()["data"]["id"]

    response = await client.post(
        "/course/createCourse", json={"code": "SE", "name": "Duplicate"}, headers=auth_headers(admin),
    )
    assert response.status_code == 400

    response = await client.post(
        "/unit/create",
        json={"course_id": course_id, "code": "JSB", "name": "Java Spring Boot", "credits": 4},
        headers=auth_headers(teacher),
    )
    assert response.status_code == 201

    response = await client.get("/unit/filter", params={"course_id": course_id}, headers=auth_headers(students[0]))
    assert [unit["name"] for unit in response.json()["data"]] == ["Java Spring Boot"]

    response = await client.get(f"/courses/{course_id}", headers=auth_headers(students[0]))
    assert response.json()["data"]["name"] == "Software Engineering"


async def test_unit_needs_existing_course(client, teacher):
    response = await client.post(
        "/unit/create",
        json={"course_id": str(uuid.uuid4()), "code": "JSB", "name": "Java Spring Boot"},
        headers=auth_headers(teacher),
    )

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Course not found"}


async def test_only_admins_create_courses(client, teacher):
    response = await client.post(
        "/course/createCourse", json={"code": "CS", "name": "Computer Science"}, headers=auth_headers(teacher),
    )

    assert response.status_code == 403

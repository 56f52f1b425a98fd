import uuid

import pytest
from fastapi import status
from httpx import AsyncClient

from app.db.models import CaseStatus

pytestmark = pytest.mark.asyncio

COMMENTS_URL = "/api/v1/comments"
ADMIN_URL = "/api/v1/admin"


class TestCommentEndpoints:
    async def test_post_and_list(self, client: AsyncClient, make_case, client_headers: dict, designer_headers: dict):
        case = await make_case(CaseStatus.submitted)
        url = f"{COMMENTS_URL}/cases/{case.id}/comments"

        created = await client.post(url, json={"comment": "Any update?"}, headers=client_headers)
        assert created.status_code == status.HTTP_201_CREATED
        assert created.json()["author_kind"] == "client"
        assert created.json()["author_name"] == "Dr. Test"

        note = await client.post(
            url, json={"comment": "Check bone density", "is_internal": True}, headers=designer_headers
        )
        assert note.status_code == status.HTTP_201_CREATED

        client_view = await client.get(url, headers=client_headers)
        staff_view = await client.get(url, headers=designer_headers)
        assert client_view.json()["total"] == 1
        assert staff_view.json()["total"] == 2

    async def test_empty_comment_is_rejected(self, client: AsyncClient, make_case, client_headers: dict):
        case = await make_case(CaseStatus.submitted)

        response = await client.post(
            f"{COMMENTS_URL}/cases/{case.id}/comments", json={"comment": ""}, headers=client_headers
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "validation_error"

    async def test_clients_cannot_post_internal_notes(self, client: AsyncClient, make_case, client_headers: dict):
        case = await make_case(CaseStatus.submitted)

        response = await client.post(
            f"{COMMENTS_URL}/cases/{case.id}/comments",
            json={"comment": "Secret", "is_internal": True},
            headers=client_headers,
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_read_tracking(self, client: AsyncClient, make_case, client_headers: dict, designer_headers: dict):
        case = await make_case(CaseStatus.submitted)
        url = f"{COMMENTS_URL}/cases/{case.id}/comments"
        first = await client.post(url, json={"comment": "Study starts today"}, headers=designer_headers)
        await client.post(url, json={"comment": "Scans received"}, headers=designer_headers)

        read = await client.put(f"{COMMENTS_URL}/{first.json()['id']}/read", headers=client_headers)
        assert read.status_code == status.HTTP_200_OK
        assert read.json()["is_read"] is True

        read_all = await client.put(f"{COMMENTS_URL}/cases/{case.id}/read-all", headers=client_headers)
        assert read_all.status_code == status.HTTP_200_OK
        assert read_all.json() == {"updated": 1}

    async def test_unknown_comment(self, client: AsyncClient, client_headers: dict):
        response = await client.put(f"{COMMENTS_URL}/{uuid.uuid4()}/read", headers=client_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestCaseStatsEndpoint:
    async def test_client_stats(self, client: AsyncClient, make_case, client_headers: dict):
        await make_case(CaseStatus.draft)
        await make_case(CaseStatus.submitted)

        response = await client.get("/api/v1/cases/stats", headers=client_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["overview"]["total"] == 2
        assert data["overview"]["pending"] == 1
        assert data["status_breakdown"] == {"draft": 1, "submitted": 1}
        assert len(data["recent_cases"]) == 2

    async def test_staff_are_refused(self, client: AsyncClient, designer_headers: dict):
        response = await client.get("/api/v1/cases/stats", headers=designer_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestAdminEndpoints:
    async def test_assign_case(
        self, client: AsyncClient, make_case, designer_profile, admin_headers: dict, designer_headers: dict
    ):
        case = await make_case(CaseStatus.submitted)

        response = await client.put(
            f"{ADMIN_URL}/cases/{case.id}/assign",
            json={"designer_profile_id": str(designer_profile.id), "notes": "Urgent"},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["is_internal"] is True
        assert response.json()["comment"] == "Case assigned to Designer\nNotes: Urgent"

        inbox = await client.get("/api/v1/notifications/", headers=designer_headers)
        assert inbox.json()["pagination"]["total"] == 1
        assert inbox.json()["notifications"][0]["purpose"] == "case_assigned"

    async def test_assign_requires_admin(
        self, client: AsyncClient, make_case, designer_profile, designer_headers: dict
    ):
        case = await make_case(CaseStatus.submitted)

        response = await client.put(
            f"{ADMIN_URL}/cases/{case.id}/assign",
            json={"designer_profile_id": str(designer_profile.id)},
            headers=designer_headers,
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_assign_unknown_designer(self, client: AsyncClient, make_case, admin_headers: dict):
        case = await make_case(CaseStatus.submitted)

        response = await client.put(
            f"{ADMIN_URL}/cases/{case.id}/assign",
            json={"designer_profile_id": str(uuid.uuid4())},
            headers=admin_headers,
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_dashboard(self, client: AsyncClient, make_case, admin_headers: dict, designer_headers: dict):
        await make_case(CaseStatus.submitted)

        response = await client.get(f"{ADMIN_URL}/dashboard", headers=admin_headers)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["overview"]["total_cases"] == 1
        assert response.json()["cases_by_status"] == {"submitted": 1}
        assert response.json()["recent_cases"][0]["client"] == "Dr. Test"

        refused = await client.get(f"{ADMIN_URL}/dashboard", headers=designer_headers)
        assert refused.status_code == status.HTTP_403_FORBIDDEN

    async def test_system_stats_period(self, client: AsyncClient, admin_headers: dict):
        response = await client.get(f"{ADMIN_URL}/stats", params={"period": 7}, headers=admin_headers)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["period_days"] == 7

        invalid = await client.get(f"{ADMIN_URL}/stats", params={"period": 0}, headers=admin_headers)
        assert invalid.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

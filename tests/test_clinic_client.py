"""Tests for the clinic backend query client."""

from __future__ import annotations

from unittest.mock import patch

import httpx
import pytest

from clinic_assistant.services.clinic_client import ClinicAPIError, ClinicQueryClient


@pytest.fixture
def clinic_client():
    client = ClinicQueryClient(base_url="http://clinic.test/api/internal", token="secret-token")
    yield client
    client.close()


class TestCall:
    def test_returns_data_payload(self, clinic_client, mock_http_response):
        response = mock_http_response({"data": [{"name": "Cleaning"}]})
        with patch.object(clinic_client._client, "post", return_value=response) as mock_post:
            assert clinic_client.call("list_treatments", {}) == [{"name": "Cleaning"}]
        mock_post.assert_called_once_with("/queries/list_treatments", json={})

    def test_sends_scoped_arguments_as_json_body(self, clinic_client, mock_http_response):
        with patch.object(clinic_client._client, "post", return_value=mock_http_response({"data": []})) as mock_post:
            clinic_client.call("get_all_patients", {"dentist_id": 7})
        assert mock_post.call_args.kwargs["json"] == {"dentist_id": 7}

    def test_payload_without_data_key_is_returned_as_is(self, clinic_client, mock_http_response):
        with patch.object(clinic_client._client, "post", return_value=mock_http_response({"total": 10})):
            assert clinic_client.call("get_revenue_estimate", {}) == {"total": 10}

    def test_404_means_not_found(self, clinic_client, mock_http_response):
        with patch.object(clinic_client._client, "post", return_value=mock_http_response({}, status_code=404)):
            assert clinic_client.call("get_appointment_details", {"appointment_id": 1}) is None

    def test_error_status_raises(self, clinic_client, mock_http_response):
        with patch.object(clinic_client._client, "post", return_value=mock_http_response({}, status_code=503)):
            with pytest.raises(ClinicAPIError) as exc_info:
                clinic_client.call("list_treatments", {})
        assert exc_info.value.status_code == 503

    def test_transport_error_is_not_retried(self, clinic_client):
        with patch.object(clinic_client._client, "post", side_effect=httpx.ReadTimeout("slow")) as mock_post:
            with pytest.raises(ClinicAPIError):
                clinic_client.call("list_treatments", {})
        assert mock_post.call_count == 1


class TestHeaders:
    def test_bearer_token_is_sent(self, clinic_client):
        assert clinic_client._client.headers["Authorization"] == "Bearer secret-token"

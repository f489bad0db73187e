"""
Visit Store API Client
Handles authentication and REST calls to the hospice scheduler API
(patients, staff, visits) that backs the dashboard.

Endpoints:
  POST   /api/login            → {"token": "..."}
  GET    /api/patients | /api/staff | /api/visits
  POST   /api/visits
  PUT    /api/visits/<id>
  DELETE /api/visits/<id>
"""

import logging
import time
from datetime import date
from typing import Dict, List, Optional, Sequence

import requests

from hospice_scheduler.config import (
    patient_from_record,
    staff_from_record,
    visit_from_record,
    visit_to_record,
)
from hospice_scheduler.models import Patient, Staff, Visit

logger = logging.getLogger(__name__)


class VisitStoreClient:
    """
    Client for the visit store REST API
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        token: Optional[str] = None,
        timeout: float = 30,
    ):
        """
        Initialize the client

        Args:
            base_url: API root (without the /api prefix)
            token: Bearer token; call login() instead to obtain one
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})
        if token:
            self._set_token(token)

    def _set_token(self, token: str) -> None:
        self.session.headers['Authorization'] = f'Bearer {token}'

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/{path.lstrip('/')}"

    def login(self, email: str, password: str) -> str:
        """
        Exchange credentials for a bearer token and use it for later calls

        Returns:
            The token
        """
        logger.info(f"Logging in as {email}")
        try:
            response = self.session.post(
                self._url('login'),
                json={'email': email, 'password': password},
                timeout=self.timeout,
            )
            response.raise_for_status()
            token = response.json()['token']
        except requests.exceptions.RequestException as e:
            logger.error(f"Login failed: {e}")
            raise
        self._set_token(token)
        return token

    def _get_list(self, path: str, label: str) -> List[Dict]:
        logger.info(f"Fetching {label}")
        try:
            response = self.session.get(self._url(path), timeout=self.timeout)
            response.raise_for_status()

            data = response.json()
            logger.info(f"Retrieved {len(data)} {label}")
            return data

        except requests.exceptions.RequestException as e:
            logger.error(f"Error fetching {label}: {e}")
            raise

    def get_patients(self) -> List[Patient]:
        """Retrieve the patient census"""
        return [patient_from_record(r) for r in self._get_list('patients', 'patients')]

    def get_staff(self) -> List[Staff]:
        """Retrieve the staff roster"""
        return [staff_from_record(r) for r in self._get_list('staff', 'staff members')]

    def get_visits(self) -> List[Visit]:
        """Retrieve every stored visit"""
        return [visit_from_record(r) for r in self._get_list('visits', 'visits')]

    def create_visit(self, visit: Visit) -> Dict:
        """
        Store a new visit

        Returns:
            The API response body
        """
        logger.info(f"Creating visit {visit.id}: {visit.discipline.value} {visit.patient_id} on {visit.date}")
        try:
            response = self.session.post(self._url('visits'), json=visit_to_record(visit), timeout=self.timeout)
            response.raise_for_status()
            return response.json()

        except requests.exceptions.RequestException as e:
            logger.error(f"Error creating visit {visit.id}: {e}")
            raise

    def update_visit(self, visit: Visit) -> Dict:
        """
        Overwrite a stored visit (matched by id)

        Returns:
            The API response body
        """
        logger.info(f"Updating visit {visit.id}")
        try:
            response = self.session.put(
                self._url(f'visits/{visit.id}'), json=visit_to_record(visit), timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()

        except requests.exceptions.RequestException as e:
            logger.error(f"Error updating visit {visit.id}: {e}")
            raise

    def delete_visit(self, visit_id: str) -> bool:
        """
        Delete a stored visit

        Returns:
            True if successful
        """
        logger.info(f"Deleting visit {visit_id}")
        try:
            response = self.session.delete(self._url(f'visits/{visit_id}'), timeout=self.timeout)
            response.raise_for_status()
            return True

        except requests.exceptions.RequestException as e:
            logger.error(f"Error deleting visit {visit_id}: {e}")
            return False

    def push_week(
        self,
        visits: Sequence[Visit],
        stored: Sequence[Visit],
        week_dates: Sequence[date],
        rate_limit_delay: float = 0.0,
    ) -> Dict[str, List[str]]:
        """
        Sync one scheduled week back to the store

        Inside the week: visits missing from the store are created, changed
        ones updated, and stored visits absent from `visits` deleted. Visits
        outside the week are left alone.

        Args:
            visits: Engine output (schedule_week result)
            stored: Visits as currently stored (get_visits result)
            week_dates: The scheduled week
            rate_limit_delay: Delay between requests (seconds)

        Returns:
            {"created": [ids], "updated": [ids], "deleted": [ids], "failed": [ids]}
        """
        week_set = set(week_dates)
        wanted = {v.id: v for v in visits if v.date in week_set}
        current = {v.id: v for v in stored if v.date in week_set}
        result: Dict[str, List[str]] = {"created": [], "updated": [], "deleted": [], "failed": []}

        logger.info(f"Pushing week of {min(week_set) if week_set else '?'}: {len(wanted)} visits")

        for visit_id, v in wanted.items():
            try:
                if visit_id not in current:
                    self.create_visit(v)
                    result["created"].append(visit_id)
                elif current[visit_id] != v:
                    self.update_visit(v)
                    result["updated"].append(visit_id)
                else:
                    continue
            except requests.exceptions.RequestException:
                result["failed"].append(visit_id)
            time.sleep(rate_limit_delay)

        for visit_id in current:
            if visit_id in wanted:
                continue
            if self.delete_visit(visit_id):
                result["deleted"].append(visit_id)
            else:
                result["failed"].append(visit_id)
            time.sleep(rate_limit_delay)

        logger.info(
            f"Push complete: {len(result['created'])} created, {len(result['updated'])} updated, "
            f"{len(result['deleted'])} deleted, {len(result['failed'])} failed"
        )
        return result

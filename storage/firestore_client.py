from __future__ import annotations

from google.cloud import firestore


def get_async_firestore_client(project_id: str = "") -> firestore.AsyncClient:
    # If project_id is empty, the library will use ADC default project.
    if project_id:
        return firestore.AsyncClient(project=project_id)
    return firestore.AsyncClient()

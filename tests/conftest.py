"""Shared test doubles."""
import json

import pytest

from xui_admin.naming import matches_identifier
from xui_admin.xui_api import ClientNotFoundError, XUIRemoteError


class FakePanel:
    """In-memory stand-in for :class:`~xui_admin.xui_api.XUIClient`."""

    def __init__(self, inbound_ids=(1, 2, 3), disabled=(), failing=()):
        self.failing = set(failing)
        self.next_stat_id = 1
        self.inbounds = {
            inbound_id: {"enable": inbound_id not in disabled, "clients": [], "stats": []}
            for inbound_id in inbound_ids
        }
        self.added = []
        self.online = []

    def list_inbounds(self):
        return [
            {
                "id": inbound_id,
                "remark": f"inbound-{inbound_id}",
                "enable": data["enable"],
                "settings": json.dumps({"clients": data["clients"]}),
                "clientStats": list(data["stats"]),
            }
            for inbound_id, data in self.inbounds.items()
        ]

    def add_client(self, inbound_id, client):
        if inbound_id in self.failing:
            raise XUIRemoteError("Duplicate email")
        record = client.to_dict()
        self.added.append((inbound_id, record))
        self.inbounds[inbound_id]["clients"].append(record)
        self.inbounds[inbound_id]["stats"].append({
            "id": self.next_stat_id,
            "inboundId": inbound_id,
            "email": record["email"],
            "enable": record["enable"],
            "expiryTime": record["expiryTime"],
            "total": record["totalGB"],
            "up": 10,
            "down": 20,
        })
        self.next_stat_id += 1
        return {"success": True}

    def remove_clients(self, identifiers):
        deleted = []
        for data in self.inbounds.values():
            for key in ("clients", "stats"):
                kept = []
                for record in data[key]:
                    if any(matches_identifier(record["email"], i) for i in identifiers):
                        if key == "clients":
                            deleted.append(record["email"])
                    else:
                        kept.append(record)
                data[key] = kept
        if not deleted:
            raise ClientNotFoundError(f"Client {', '.join(identifiers)} not found")
        return deleted, []

    def reset_client_traffic(self, inbound_id, email):
        if inbound_id in self.failing:
            raise XUIRemoteError("reset failed")
        for stat in self.inbounds[inbound_id]["stats"]:
            if stat["email"] == email:
                stat["up"] = stat["down"] = 0
        return {"success": True}

    def get_online_clients(self):
        return list(self.online)

    def subscription_url(self, sub_id):
        return f"https://sub.example.com/{sub_id}?name={sub_id}"

    def check_connection(self):
        return True

    def clients_of(self, inbound_id):
        return {c["email"]: c for c in self.inbounds[inbound_id]["clients"]}


@pytest.fixture
def make_panel():
    return FakePanel

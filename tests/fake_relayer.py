import json
import time

import httpx
from nacl.public import PrivateKey
from nacl.signing import SigningKey

import client_helper as helper


class FakeRelayer:
    """
    In-process relayer: registers sealed inputs with the executor and
    answers user-decrypt requests after checking signature, validity
    window and on-chain grants. Mount with httpx.MockTransport(handle).
    """
    def __init__(self, executor, executor_name: str, network_key: PrivateKey,
                 verifier_key: SigningKey, operator: str = "operator", clock=None):
        self.executor = executor
        self.executor_name = executor_name
        self.network_key = network_key
        self.verifier_key = verifier_key
        self.operator = operator
        self.clock = clock or (lambda: int(time.time()))
        self.domain = helper.build_domain(verifying_contract=executor_name)
        self.online = True
        self.requests = []

    @property
    def network_public_key(self) -> str:
        return self.network_key.public_key.encode().hex()

    # ---- Input pipeline ----

    def input_proof(self, contract: str, user: str, ciphertext: str) -> dict:
        fhe_type, value = helper.open_input(self.network_key.encode().hex(), ciphertext)
        handle = helper.input_handle(self.executor_name, contract, user, ciphertext)
        self.executor.register_input(
            handle=handle,
            fhe_type=fhe_type,
            value=value,
            contract=contract,
            user=user,
            signer=self.operator,
        )
        message = helper.input_message(self.executor_name, contract, user, handle)
        proof = self.verifier_key.sign(message.encode("utf-8")).signature.hex()
        return {"handle": handle, "input_proof": proof}

    def encrypt(self, value: int, contract: str, user: str, fhe_type: str = "euint32") -> dict:
        return self.input_proof(contract, user, helper.seal_input(self.network_public_key, value, fhe_type))

    # ---- Decryption ----

    def cleartext(self, handle: str) -> int:
        return self.executor.cleartexts[handle]

    def user_decrypt(self, payload: dict):
        record = helper.build_decrypt_record(
            payload["public_key"],
            payload["contract_addresses"],
            payload["start_timestamp"],
            payload["duration_seconds"],
        )
        user = payload["user_address"]

        if not helper.verify_decrypt_signature(user, self.domain, record, payload["signature"]):
            return 401, {"error": "invalid signature"}
        if not helper.window_is_open(record, self.clock()):
            return 403, {"error": "authorization expired"}

        results = {}
        for pair in payload["handles"]:
            handle, contract = pair["handle"], pair["contract_address"]
            if contract not in record["contract_addresses"]:
                return 403, {"error": f"{contract} not authorized"}
            if not self.executor.is_allowed(handle=handle, principal=user):
                return 403, {"error": f"{user} may not decrypt {handle}"}
            if not self.executor.is_allowed(handle=handle, principal=contract):
                return 403, {"error": f"{contract} may not decrypt {handle}"}
            results[handle] = helper.seal_cleartext(record["public_key"], self.cleartext(handle))
        return 200, {"results": results}

    # ---- Transport ----

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if not self.online:
            return httpx.Response(503, json={"error": "relayer offline"})

        if request.method == "GET" and request.url.path == "/v1/keys":
            return httpx.Response(200, json={"public_key": self.network_public_key})

        payload = json.loads(request.content)
        if request.url.path == "/v1/input-proof":
            return httpx.Response(200, json=self.input_proof(
                payload["contract_address"], payload["user_address"], payload["ciphertext"]
            ))
        if request.url.path == "/v1/user-decrypt":
            status, body = self.user_decrypt(payload)
            return httpx.Response(status, json=body)
        return httpx.Response(404, json={"error": "not found"})

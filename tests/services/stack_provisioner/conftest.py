from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator

import pytest
from botocore.exceptions import ClientError

import stack_provisioner.stack as stack_module

ACCOUNT = "123456789012"


def client_error(code: str, message: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeIam:
    def __init__(self, roles: set[str] | None = None) -> None:
        self.roles = set(roles or set())
        self.calls: list[str] = []

    def get_role(self, RoleName: str) -> dict:
        self.calls.append(RoleName)
        if RoleName not in self.roles:
            raise client_error("NoSuchEntity", f"The role with name {RoleName} cannot be found.", "GetRole")
        return {"Role": {"RoleName": RoleName, "Arn": f"arn:aws:iam::{ACCOUNT}:role/{RoleName}"}}


class FakeS3:
    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], dict] = {}
        self.deleted: list[tuple[str, str]] = []
        self.fail_upload = False
        self.fail_put = False
        self.fail_delete = False

    def upload_file(self, filename: str, bucket: str, key: str, ExtraArgs: dict | None = None) -> None:
        if self.fail_upload:
            raise client_error("AccessDenied", "Access Denied", "PutObject")
        self.objects[(bucket, key)] = {"Body": Path(filename).read_bytes(), **(ExtraArgs or {})}

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str) -> dict:
        if self.fail_put:
            raise client_error("AccessDenied", "Access Denied", "PutObject")
        self.objects[(Bucket, Key)] = {"Body": Body, "ContentType": ContentType}
        return {}

    def delete_object(self, Bucket: str, Key: str) -> dict:
        self.deleted.append((Bucket, Key))
        if self.fail_delete:
            raise client_error("InternalError", "We encountered an internal error.", "DeleteObject")
        self.objects.pop((Bucket, Key), None)
        return {}


class FakeEventPaginator:
    def __init__(self, cfn: "FakeCloudFormation") -> None:
        self.cfn = cfn

    def paginate(self, StackName: str) -> Iterator[dict]:
        pages = self.cfn.event_pages.get(StackName) or [[]]
        for index, page in enumerate(pages):
            payload: dict[str, Any] = {"StackEvents": page}
            if index < len(pages) - 1:
                payload["NextToken"] = f"token-{index + 1}"
            self.cfn.event_page_reads += 1
            yield payload


class FakeCloudFormation:
    """In-memory CloudFormation that replays scripted statuses per stack id."""

    def __init__(self) -> None:
        self.stacks: dict[str, dict] = {}
        self.scripts: dict[str, list[str]] = {}
        self.event_pages: dict[str, list[list[dict]]] = {}
        self.event_page_reads = 0
        self.create_script = ["CREATE_IN_PROGRESS", "CREATE_COMPLETE"]
        self.update_script = ["UPDATE_IN_PROGRESS", "UPDATE_COMPLETE"]
        self.errors: dict[str, ClientError] = {}
        self.requests: list[tuple[str, dict]] = []
        self._counter = 0

    def _find(self, name_or_id: str) -> dict | None:
        for stack in self.stacks.values():
            if name_or_id in (stack["StackName"], stack["StackId"]):
                return stack
        return None

    def _missing(self, name_or_id: str, operation: str) -> ClientError:
        return client_error("ValidationError", f"Stack with id {name_or_id} does not exist", operation)

    def add_stack(self, name: str, status: str = "CREATE_COMPLETE") -> str:
        self._counter += 1
        stack_id = f"arn:aws:cloudformation:us-east-1:{ACCOUNT}:stack/{name}/{self._counter}"
        self.stacks[name] = {"StackName": name, "StackId": stack_id, "StackStatus": status}
        return stack_id

    def describe_stacks(self, StackName: str) -> dict:
        self.requests.append(("describe_stacks", {"StackName": StackName}))
        if "describe_stacks" in self.errors:
            raise self.errors["describe_stacks"]
        stack = self._find(StackName)
        if stack is None:
            raise self._missing(StackName, "DescribeStacks")
        script = self.scripts.get(stack["StackId"])
        if StackName == stack["StackId"] and script:
            stack["StackStatus"] = script.pop(0)
        return {"Stacks": [dict(stack)]}

    def create_stack(self, **kwargs: Any) -> dict:
        self.requests.append(("create_stack", kwargs))
        if "create_stack" in self.errors:
            raise self.errors["create_stack"]
        stack_id = self.add_stack(kwargs["StackName"], status="CREATE_IN_PROGRESS")
        self.scripts[stack_id] = list(self.create_script)
        return {"StackId": stack_id}

    def update_stack(self, **kwargs: Any) -> dict:
        self.requests.append(("update_stack", kwargs))
        if "update_stack" in self.errors:
            raise self.errors["update_stack"]
        stack = self._find(kwargs["StackName"])
        if stack is None:
            raise self._missing(kwargs["StackName"], "UpdateStack")
        self.scripts[stack["StackId"]] = list(self.update_script)
        return {"StackId": stack["StackId"]}

    def get_paginator(self, operation: str) -> FakeEventPaginator:
        assert operation == "describe_stack_events"
        return FakeEventPaginator(self)

    def operations(self) -> list[str]:
        return [name for name, _ in self.requests if name != "describe_stacks"]


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
    recorded: list[float] = []
    monkeypatch.setattr(stack_module.time, "sleep", lambda seconds: recorded.append(seconds))
    return recorded


@pytest.fixture
def iam() -> FakeIam:
    return FakeIam({"exec", "admin"})


@pytest.fixture
def s3() -> FakeS3:
    return FakeS3()


@pytest.fixture
def cloudformation() -> FakeCloudFormation:
    return FakeCloudFormation()

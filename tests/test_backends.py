from datetime import datetime, timedelta, timezone
from unittest import TestCase
from unittest.mock import MagicMock

import requests
from fakes import FakeResponse, make_file, make_module

from syncmynus.backends import CanvasBackend, LuminusBackend
from syncmynus.errors import ProtocolError, TransportError


def make_backend(cls, *responses):
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = list(responses)
    return cls("token", session=session), session


def luminus_folder(id, name, active=True, upload=False, subfolders=0, access=True):
    folder = {
        "id": id,
        "name": name,
        "isActive": active,
        "allowUpload": upload,
        "subFolderCount": subfolders,
        "totalFileCount": 1,
    }
    if access:
        folder["access"] = {"access_Full": True}
    return folder


class LuminusBackendTest(TestCase):
    def test_bearer_header(self):
        _, session = make_backend(LuminusBackend)

        self.assertEqual(session.headers["Authorization"], "Bearer token")

    def test_list_modules(self):
        backend, session = make_backend(
            LuminusBackend,
            FakeResponse(
                json_data={
                    "data": [
                        {"id": "m-1", "name": "CS2030S", "courseName": "Programming"}
                    ]
                }
            ),
        )

        [module] = backend.list_modules()

        self.assertEqual((module.id, module.name, module.title), ("m-1", "CS2030S", "Programming"))

    def test_list_folders(self):
        backend, session = make_backend(
            LuminusBackend,
            FakeResponse(
                json_data={
                    "data": [
                        luminus_folder("a", "Lecture Notes", subfolders=2),
                        luminus_folder("b", "Submissions", upload=True),
                        luminus_folder("c", "Archive", active=False, subfolders=1),
                        luminus_folder("d", "Hidden", access=False),
                        luminus_folder("e", "Q&A: week 1?"),
                    ]
                }
            ),
        )

        folders = backend.list_folders("m-1")

        self.assertEqual([f.id for f in folders], ["a", "b", "c", "e"])
        self.assertEqual([f.downloadable for f in folders], [True, False, False, True])
        self.assertEqual(
            [f.has_subfolders for f in folders], [True, False, True, False]
        )
        self.assertEqual(folders[3].name, "QA week 1")
        self.assertIn("ParentID=m-1", session.get.call_args.args[0])

    def test_list_files(self):
        backend, _ = make_backend(
            LuminusBackend,
            FakeResponse(
                json_data={
                    "data": [
                        {
                            "id": "f-1",
                            "name": "Lecture 1.pdf",
                            "lastUpdatedDate": "2022-01-10T16:00:00.000+08:00",
                        }
                    ]
                }
            ),
        )

        [file] = backend.list_files("a", ("CS2030S", "Lecture Notes"))

        self.assertEqual(file.key, "CS2030S/Lecture Notes/Lecture 1.pdf")
        self.assertEqual(file.last_updated, datetime(2022, 1, 10, 8, tzinfo=timezone.utc))
        self.assertIs(file.backend, backend)

    def test_resolve_download_url(self):
        backend, session = make_backend(
            LuminusBackend,
            FakeResponse(json_data={"status": "success", "data": "https://s3/signed"}),
        )

        url = backend.resolve_download_url(make_file("x.pdf", id="f-1"))

        self.assertEqual(url, "https://s3/signed")
        self.assertTrue(session.get.call_args.args[0].endswith("/files/file/f-1/downloadurl"))

    def test_missing_download_url(self):
        backend, _ = make_backend(LuminusBackend, FakeResponse(json_data={"data": None}))

        with self.assertRaises(ProtocolError):
            backend.resolve_download_url(make_file("x.pdf"))

    def test_non_200(self):
        backend, _ = make_backend(LuminusBackend, FakeResponse(401, text="Unauthorized"))

        with self.assertRaises(ProtocolError):
            backend.list_folders("m-1")

    def test_malformed_entry(self):
        backend, _ = make_backend(
            LuminusBackend, FakeResponse(json_data={"data": [{"id": "a", "access": {}}]})
        )

        with self.assertRaises(ProtocolError):
            backend.list_folders("m-1")

    def test_transport_error(self):
        backend, _ = make_backend(LuminusBackend, requests.Timeout())

        with self.assertRaises(TransportError):
            backend.list_modules()


class CanvasBackendTest(TestCase):
    def test_pagination(self):
        backend, session = make_backend(
            CanvasBackend,
            FakeResponse(
                json_data=[{"id": 1, "course_code": "MA1521", "name": "Calculus"}],
                links={"next": {"url": "https://canvas.nus.edu.sg/api/v1/courses?page=2"}},
            ),
            FakeResponse(
                json_data=[
                    {"id": 2, "course_code": "GEA1000", "name": "Data"},
                    {"id": 3, "access_restricted_by_date": True},
                ]
            ),
        )

        modules = backend.list_modules()

        self.assertEqual([m.name for m in modules], ["MA1521", "GEA1000"])
        first, second = session.get.call_args_list
        self.assertEqual(
            first.kwargs["params"], {"enrollment_state": "active", "per_page": 100}
        )
        self.assertEqual(second.args[0], "https://canvas.nus.edu.sg/api/v1/courses?page=2")
        self.assertIsNone(second.kwargs["params"])

    def test_root_folder_id(self):
        backend, session = make_backend(
            CanvasBackend, FakeResponse(json_data={"id": 555, "name": "course files"})
        )

        self.assertEqual(backend.root_folder_id(make_module(7, "MA1521")), 555)
        self.assertTrue(session.get.call_args.args[0].endswith("/courses/7/folders/root"))

    def test_list_folders(self):
        backend, _ = make_backend(
            CanvasBackend,
            FakeResponse(
                json_data=[
                    {"id": 1, "name": "Slides", "folders_count": 2},
                    {"id": 2, "name": "Locked", "locked_for_user": True},
                    {"id": 3, "name": "Hidden", "hidden_for_user": True},
                ]
            ),
        )

        folders = backend.list_folders(555)

        self.assertEqual([f.downloadable for f in folders], [True, False, False])
        self.assertEqual([f.has_subfolders for f in folders], [True, False, False])

    def test_list_files(self):
        backend, _ = make_backend(
            CanvasBackend,
            FakeResponse(
                json_data=[
                    {
                        "id": 10,
                        "filename": "Tutorial1.pdf",
                        "display_name": "Tutorial1_HW1.pdf",
                        "updated_at": "2022-01-10T08:00:00Z",
                    },
                    {
                        "id": 11,
                        "filename": "answers.pdf",
                        "display_name": "answers.pdf",
                        "updated_at": "2022-01-10T08:00:00Z",
                        "hidden_for_user": True,
                    },
                ]
            ),
        )

        [file] = backend.list_files(1, ("MA1521", "Slides"))

        self.assertEqual(file.key, "MA1521/Slides/Tutorial1_HW1.pdf")
        self.assertEqual(
            file.last_updated,
            datetime(2022, 1, 10, 16, tzinfo=timezone(timedelta(hours=8))),
        )

    def test_resolve_download_url(self):
        backend, _ = make_backend(
            CanvasBackend,
            FakeResponse(json_data={"id": 10, "url": "https://canvas/files/10/download?verifier=x"}),
        )

        self.assertEqual(
            backend.resolve_download_url(make_file("x.pdf", id=10)),
            "https://canvas/files/10/download?verifier=x",
        )

    def test_unexpected_listing(self):
        backend, _ = make_backend(
            CanvasBackend, FakeResponse(json_data={"errors": [{"message": "nope"}]})
        )

        with self.assertRaises(ProtocolError):
            backend.list_folders(555)

from io import BytesIO

import httpx
import pytest
from PIL import Image

from images import ImageLoader, is_public_url, lesson_image_refs, resolve_activity_image, resolve_slide_images
from lesson_schema import ActivityItem, SlideSpec, coerce_lesson


def slide(**kwargs):
    return SlideSpec.model_validate({"title": "T", **kwargs})


class TestResolveSlideImages:
    def test_selected_images_win_and_are_not_merged(self):
        s = slide(selectedImages=["/a.png"], imageSuggestions=["cat"])
        assert resolve_slide_images(s, {"cat": "/cat.png"}) == ["/a.png"]

    def test_selected_images_capped_at_four(self):
        s = slide(selectedImages=[f"/{i}.png" for i in range(6)])
        assert resolve_slide_images(s) == ["/0.png", "/1.png", "/2.png", "/3.png"]

    def test_blank_selected_entries_are_ignored(self):
        s = slide(selectedImages=["", "/x.png"], imageSuggestions=["cat"])
        assert resolve_slide_images(s, {"cat": "/cat.png"}) == ["/x.png"]

    def test_suggestions_keep_order_and_skip_misses(self):
        s = slide(imageSuggestions=["dog", "missing", "cat"])
        assert resolve_slide_images(s, {"cat": "/cat.png", "dog": "/dog.png"}) == ["/dog.png", "/cat.png"]

    def test_no_sources_means_no_images(self):
        assert resolve_slide_images(slide(imageSuggestions=["cat"]), None) == []
        assert resolve_slide_images(slide(selectedImages=[]), {}) == []


def test_activity_image_prefers_direct_url():
    activity = ActivityItem.model_validate({"imageUrl": "/direct.png", "images": [{"description": "frog"}]})
    assert resolve_activity_image(activity, {"frog": "/frog.png"}) == "/direct.png"

    activity = ActivityItem.model_validate({"images": [{"description": "toad"}, {"description": "frog"}]})
    assert resolve_activity_image(activity, {"frog": "/frog.png"}) == "/frog.png"
    assert resolve_activity_image(activity, None) is None


class TestImageLoader:
    def test_loads_local_file(self, png_path):
        stream = ImageLoader().load(str(png_path))
        assert Image.open(stream).size == (64, 48)

    def test_loads_data_uri(self, png_data_uri):
        assert ImageLoader().load(png_data_uri) is not None

    def test_uploads_prefix_maps_to_uploads_dir(self, tmp_path, png_path):
        loader = ImageLoader(uploads_dir=tmp_path)
        assert loader.local_path("/uploads/picture.png") == (tmp_path / "picture.png").resolve()
        assert loader.load("/uploads/picture.png") is not None

    def test_upload_refs_cannot_leave_uploads_dir(self, tmp_path, make_image):
        make_image(tmp_path / "private.png")
        (tmp_path / "uploads").mkdir()
        loader = ImageLoader(uploads_dir=tmp_path / "uploads")
        assert loader.local_path("/uploads/../private.png") is None
        assert loader.load("/uploads/../private.png") is None
        assert loader.load("/uploads/sub/../../private.png") is None

    def test_local_paths_refused_when_disallowed(self, png_path):
        loader = ImageLoader(allow_local_paths=False)
        assert loader.local_path(str(png_path)) is None
        assert loader.load(str(png_path)) is None

    def test_unreadable_refs_yield_none(self, tmp_path):
        junk = tmp_path / "junk.png"
        junk.write_text("not an image")
        loader = ImageLoader()
        assert loader.load(str(tmp_path / "nope.png")) is None
        assert loader.load(str(junk)) is None
        assert loader.load("data:image/png;base64,!!!") is None
        assert loader.load("") is None

    def test_remote_ref_needs_prefetch(self):
        assert ImageLoader().load("https://example.com/a.png") is None

    def test_load_all_drops_failures(self, png_path, tmp_path):
        streams = ImageLoader().load_all([str(png_path), str(tmp_path / "missing.png")])
        assert len(streams) == 1

    def test_prefetch_downloads_remote_refs(self, tmp_path):
        buf = BytesIO()
        Image.new("RGB", (8, 8)).save(buf, format="PNG")

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/ok.png":
                return httpx.Response(200, content=buf.getvalue())
            return httpx.Response(404)

        loader = ImageLoader(cache_dir=tmp_path / "cache")
        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            fetched = loader.prefetch(["https://img.test/ok.png", "https://img.test/gone.png", "/local.png"], client)

        assert fetched == 1
        assert loader.load("https://img.test/ok.png") is not None
        assert loader.load("https://img.test/gone.png") is None


def test_lesson_image_refs(sample_lesson):
    sample_lesson["slides"][0]["imageSuggestions"] = ["habitat diagram"]
    sample_lesson["resourceContent"]["items"][0]["imageUrl"] = "https://img.test/pond.png"
    lesson = coerce_lesson(sample_lesson)
    refs = lesson_image_refs(lesson, {"habitat diagram": "/tmp/a.png"})
    assert refs == ["/tmp/a.png", "https://img.test/pond.png"]


@pytest.mark.parametrize("url, public", [
    ("https://img.test/a.png", True),
    ("http://93.184.216.34/a.png", True),
    ("http://127.0.0.1/a.png", False),
    ("http://localhost:8000/a.png", False),
    ("http://api.localhost/a.png", False),
    ("http://10.0.0.5/a.png", False),
    ("http://169.254.169.254/latest/meta-data", False),
    ("http://[::1]/a.png", False),
])
def test_is_public_url(url, public):
    assert is_public_url(url) is public


class TestPrefetchHostChecks:
    @pytest.fixture
    def png_bytes(self):
        buf = BytesIO()
        Image.new("RGB", (8, 8)).save(buf, format="PNG")
        return buf.getvalue()

    def test_private_hosts_are_never_requested(self, tmp_path, png_bytes):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, content=png_bytes)

        refs = ["http://127.0.0.1/a.png", "http://localhost/b.png", "http://10.0.0.5/c.png"]
        loader = ImageLoader(cache_dir=tmp_path / "cache")
        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            assert loader.prefetch(refs, client) == 0
        assert seen == []
        assert all(loader.load(ref) is None for ref in refs)

    def test_redirect_to_private_host_is_refused(self, tmp_path, png_bytes):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.host)
            if request.url.host == "img.test":
                return httpx.Response(302, headers={"Location": "http://127.0.0.1/secret.png"})
            return httpx.Response(200, content=png_bytes)

        loader = ImageLoader(cache_dir=tmp_path / "cache")
        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            assert loader.prefetch(["https://img.test/hop.png"], client) == 0
        assert seen == ["img.test"]

    def test_public_redirect_is_followed(self, tmp_path, png_bytes):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/hop.png":
                return httpx.Response(301, headers={"Location": "https://cdn.test/final.png"})
            return httpx.Response(200, content=png_bytes)

        loader = ImageLoader(cache_dir=tmp_path / "cache")
        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            assert loader.prefetch(["https://img.test/hop.png"], client) == 1
        assert loader.load("https://img.test/hop.png") is not None

    def test_redirect_loops_give_up(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"Location": "https://img.test/again.png"})

        loader = ImageLoader(cache_dir=tmp_path / "cache")
        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            assert loader.prefetch(["https://img.test/loop.png"], client) == 0

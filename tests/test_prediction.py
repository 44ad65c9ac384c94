import pytest

from app.services.prediction import PredictionOutputError, extract_output_url, extract_output_urls


class FileOutput:
    """Mimics a provider file object."""

    def __init__(self, url):
        self.url = url


class TestExtractOutputUrl:

    def test_bare_string(self):
        assert extract_output_url("https://cdn.test/a.png") == "https://cdn.test/a.png"

    def test_list_uses_first_output(self):
        output = ["https://cdn.test/first.png", "https://cdn.test/second.png"]
        assert extract_output_url(output) == "https://cdn.test/first.png"

    @pytest.mark.parametrize("key", ["url", "image", "output"])
    def test_known_keys(self, key):
        assert extract_output_url({key: "https://cdn.test/k.png"}) == "https://cdn.test/k.png"

    def test_known_key_order(self):
        output = {"output": "https://cdn.test/output.png", "url": "https://cdn.test/url.png"}
        assert extract_output_url(output) == "https://cdn.test/url.png"

    def test_known_key_holding_a_list(self):
        assert extract_output_url({"output": ["https://cdn.test/o.png"]}) == "https://cdn.test/o.png"

    def test_falls_back_to_first_http_value(self):
        output = {"seed": 42, "status": "done", "file": "https://cdn.test/f.png"}
        assert extract_output_url(output) == "https://cdn.test/f.png"

    def test_file_objects(self):
        assert extract_output_url(FileOutput("https://cdn.test/obj.png")) == "https://cdn.test/obj.png"
        assert extract_output_url([FileOutput("https://cdn.test/l.png")]) == "https://cdn.test/l.png"

    def test_list_of_mappings(self):
        assert extract_output_url([{"image": "https://cdn.test/m.png"}]) == "https://cdn.test/m.png"

    @pytest.mark.parametrize("output", [
        None,
        "",
        "   ",
        [],
        [42],
        {},
        {"seed": 42, "label": "no url here"},
        12345,
    ])
    def test_unusable_outputs_raise(self, output):
        with pytest.raises(PredictionOutputError):
            extract_output_url(output)

    def test_error_is_deterministic(self):
        output = {"seed": 1}
        messages = set()
        for _ in range(3):
            with pytest.raises(PredictionOutputError) as exc:
                extract_output_url(output)
            messages.add(str(exc.value))
        assert len(messages) == 1
        assert "seed" in messages.pop()

    def test_error_is_not_retryable(self):
        with pytest.raises(PredictionOutputError) as exc:
            extract_output_url([])
        assert exc.value.retryable is False


class TestExtractOutputUrls:

    def test_counts_list_variations(self):
        assert len(extract_output_urls(["https://a", "https://b", 3])) == 2

    def test_single_and_unusable(self):
        assert extract_output_urls("https://a") == ["https://a"]
        assert extract_output_urls({"nothing": 1}) == []

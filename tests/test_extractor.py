import functools
import os
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer

import pytest

from kinder.extractor import (
    KUBERNETES_BINARIES,
    KUBERNETES_IMAGES,
    ExtractError,
    Extractor,
    FileNameMutator,
    expand_wildcards,
    extract_from_http,
    extract_from_local_dir,
    extract_from_release_build,
    save_version_file,
)
from kinder.k8sversion import parse_semantic


class _QuietHandler(SimpleHTTPRequestHandler):
    def log_message(self, format, *args):
        pass


@pytest.fixture
def http_repo(tmp_path, monkeypatch):
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "http_proxy", "https_proxy", "ALL_PROXY", "all_proxy"):
        monkeypatch.delenv(name, raising=False)
    root = tmp_path / "repo"
    root.mkdir()
    handler = functools.partial(_QuietHandler, directory=str(root))
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield root, f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


@pytest.fixture
def local_repo(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    for name in (*KUBERNETES_BINARIES, *KUBERNETES_IMAGES):
        (src / name).write_text(f"content of {name}")
    (src / "version").write_text("v1.30.0\n")
    dst = tmp_path / "dst"
    dst.mkdir()
    return src, dst


def test_mutate_prefix_override_and_version():
    assert FileNameMutator(name_prefix="pre").mutate("kubeadm") == "pre-kubeadm"
    assert FileNameMutator(name_override="other").mutate("kubeadm") == "other"
    assert FileNameMutator(name_override="other").mutate("version") == "version"


def test_mutate_prepend_folder():
    mutator = FileNameMutator(prepend_version_folder=True)
    mutator.set_prepend_version_folder(parse_semantic("v1.2.3"))
    assert mutator.prepend_folder == "v1.2.3"
    assert mutator.mutate("kubelet") == os.path.join("v1.2.3", "kubelet")


def test_set_prepend_version_folder_disabled_is_ignored():
    mutator = FileNameMutator()
    mutator.set_prepend_version_folder(parse_semantic("v1.2.3"))
    assert mutator.prepend_folder == ""
    assert mutator.mutate("kubelet") == "kubelet"


def test_ensure_folder_creates_and_fails_when_present(tmp_path):
    mutator = FileNameMutator(prepend_folder="v1.2.3")
    mutator.ensure_folder(tmp_path)
    assert (tmp_path / "v1.2.3").is_dir()
    with pytest.raises(ExtractError):
        mutator.ensure_folder(tmp_path)


def test_read_version_file_missing(tmp_path):
    with pytest.raises(ExtractError, match="please provide a version file"):
        FileNameMutator(prepend_version_folder=True).read_version_file(tmp_path)


def test_read_version_file_sets_folder(tmp_path):
    (tmp_path / "version").write_text("v1.28.1\n")
    mutator = FileNameMutator(prepend_version_folder=True)
    mutator.read_version_file(tmp_path)
    assert mutator.prepend_folder == "v1.28.1"


def test_expand_wildcards(tmp_path):
    for name in ("b.tar", "a.tar", "c.txt"):
        (tmp_path / name).write_text("x")
    assert expand_wildcards(tmp_path, ["kubeadm", "*.tar"]) == ["kubeadm", "a.tar", "b.tar"]


def test_save_version_file(tmp_path):
    save_version_file(True, tmp_path, parse_semantic("v1.2.3"), FileNameMutator())
    assert (tmp_path / "version").read_text() == "v1.2.3"


def test_save_version_file_disabled(tmp_path):
    save_version_file(False, tmp_path, parse_semantic("v1.2.3"), FileNameMutator())
    assert list(tmp_path.iterdir()) == []


def test_extractor_defaults_and_options():
    default = Extractor("src", "dst")
    assert default.files == [*KUBERNETES_BINARIES, *KUBERNETES_IMAGES]
    assert default.add_version_file is True
    only = Extractor("src", "dst", only_kubeadm=True)
    assert only.files == ["kubeadm"]
    assert only.add_version_file is False
    images = Extractor("src", "dst", only_kubernetes_images=True, version_file=True)
    assert images.files == list(KUBERNETES_IMAGES)
    assert images.add_version_file is True


def test_extract_local_all(local_repo):
    src, dst = local_repo
    paths = Extractor(str(src), str(dst)).extract()
    assert set(paths) == {*KUBERNETES_BINARIES, *KUBERNETES_IMAGES, "version"}
    for name, path in paths.items():
        assert open(path).read() == (src / name).read_text()
    assert os.stat(paths["kubeadm"]).st_mode & 0o777 == 0o755


def test_extract_local_version_folder_and_prefix(local_repo):
    src, dst = local_repo
    paths = Extractor(str(src), str(dst), only_kubeadm=True, version_folder=True, name_prefix="pre").extract()
    assert paths == {"kubeadm": os.path.join(str(dst), "v1.30.0", "pre-kubeadm")}
    assert open(paths["kubeadm"]).read() == "content of kubeadm"


def test_extract_local_single_file_with_override(local_repo):
    src, dst = local_repo
    paths = Extractor(str(src / "kube-proxy.tar"), str(dst), name_override="proxy.tar", version_file=False).extract()
    assert paths == {"kube-proxy.tar": os.path.join(str(dst), "proxy.tar")}


def test_extract_local_wildcard(local_repo):
    src, dst = local_repo
    extractor = Extractor(str(src), str(dst), version_file=False)
    extractor.files = ["*.tar"]
    paths = extractor.extract()
    assert sorted(paths) == sorted(KUBERNETES_IMAGES)


def test_extract_local_missing_file(local_repo):
    src, dst = local_repo
    (src / "kubelet").unlink()
    with pytest.raises(ExtractError, match="cannot access kubelet"):
        extract_from_local_dir(str(src), ["kubelet"], str(dst), FileNameMutator(), False)


def test_extract_local_missing_source(tmp_path):
    with pytest.raises(ExtractError, match="source path"):
        extract_from_local_dir(str(tmp_path / "nope"), ["kubeadm"], str(tmp_path), FileNameMutator(), False)


def test_extract_local_missing_destination(local_repo, tmp_path):
    src, _ = local_repo
    with pytest.raises(ExtractError, match="destination path"):
        extract_from_local_dir(str(src), ["kubeadm"], str(tmp_path / "nope"), FileNameMutator(), False)


def test_extract_http_missing_destination(tmp_path):
    with pytest.raises(ExtractError, match="destination path"):
        extract_from_http("http://127.0.0.1:1", ["kubeadm"], str(tmp_path / "nope"), FileNameMutator(), False)


def test_extract_release_build_cannot_write_version(tmp_path):
    with pytest.raises(ExtractError, match="error creating version file"):
        extract_from_release_build("release/v1.30.0", ["kubeadm"], str(tmp_path / "nope"), FileNameMutator(), True)


def test_extract_http(http_repo, tmp_path):
    root, url = http_repo
    (root / "kubeadm").write_bytes(b"kubeadm-binary")
    (root / "kube-proxy.tar").write_bytes(b"tarball")
    (root / "version").write_text("v1.30.0")
    dst = tmp_path / "out"
    dst.mkdir()
    paths = extract_from_http(url, ["kubeadm", "kube-proxy.tar"], str(dst), FileNameMutator(), True)
    assert set(paths) == {"kubeadm", "kube-proxy.tar", "version"}
    assert (dst / "kubeadm").read_bytes() == b"kubeadm-binary"
    assert (dst / "version").read_text() == "v1.30.0"
    assert os.stat(paths["kubeadm"]).st_mode & 0o777 == 0o755


def test_extractor_remote_source(http_repo, tmp_path):
    root, url = http_repo
    (root / "kubelet").write_bytes(b"kubelet-binary")
    dst = tmp_path / "out"
    dst.mkdir()
    paths = Extractor(url, str(dst), only_kubelet=True, name_prefix="x").extract()
    assert paths == {"kubelet": os.path.join(str(dst), "x-kubelet")}
    assert (dst / "x-kubelet").read_bytes() == b"kubelet-binary"
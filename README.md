# kinder

Building blocks for creating and operating kubeadm test clusters whose nodes
are containers on the local docker engine: running commands on the host and in
node containers, editing docker image archives, patching kubeadm configuration,
rendering the load balancer configuration and fetching Kubernetes binaries and
image tarballs.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install ".[test]"
pytest
```

## Modules

- `kinder.commands` – `HostCmd(command, *args)` runs a command on the host;
  `NodeCmd(node, command, *args)` runs a command inside a node container
  through `docker exec`. Both offer `run()` (output discarded),
  `run_with_echo()` (output shown on screen), `run_and_capture()` (stdout and
  stderr returned as a list of lines), `stdin(data)` and `argv()`.
  `HostCmd.set_env("KEY=VALUE", ...)` replaces the environment of the command.
  `NodeCmd` prints the command text before running it unless `silent()` is
  called, and `dry_run()` prints it without running anything. A command that
  cannot start or exits with a non-zero status raises `CommandError`, whose
  `output` holds any captured lines.
- `kinder.colors` – `prompt`, `command` and `info` colour their text with ANSI
  escapes when the environment variable `KINDER_COLORS` is set to `on`
  (any case); `color_on()` reports whether that is so.
- `kinder.cri.archive` – `get_archive_tags(path)` returns the `repo:tag` names
  recorded in a docker image archive; `edit_archive_repositories(reader,
  writer, edit)` copies an archive while renaming image repositories in its
  `repositories` and `manifest.json` files. Errors raise `ArchiveError`.
- `kinder.cri.docker` – `inspect_container`, `pull_image` (with retries),
  `run` (raises `DockerRunError` carrying the output) and `send_signal`.
- `kinder.cri.common` – `userns_remap()`, `get_proxy_envs()` (proxy
  variables for node containers, with the default docker network's subnets
  added to `NO_PROXY`), `get_subnets(network)`, `get_free_port()`,
  `run_args_for_external_etcd`, `container_args_for_external_etcd` and
  `try_until(deadline, attempt)`.
- `kinder.cri.containerd_config` – `get_cri_sandbox_image(path)` and
  `set_cri_sandbox_image(path, image)` for a containerd `config.toml`
  (`DEFAULT_CONFIG_PATH` is `/etc/containerd/config.toml`). A missing field
  raises `SandboxImageNotFoundError`; a missing file raises the usual `OSError`.
- `kinder.kubeadm.patch` – `build(stream, patches, patches6902)` applies YAML
  merge patches and then `PatchJSON6902` patches to every document of a YAML
  stream whose `kind` (and `apiVersion`, when the patch sets one) match.
  `merge_patch`, `apply_json6902` and `split_yaml_documents` are available on
  their own. Failures raise `PatchError`.
- `kinder.kubeadm.patches` – patches for the `v1beta3` and `v1beta4` kubeadm
  config versions: `get_remove_token_patch`, `get_docker_patch`,
  `get_encryption_algorithm_patch` (`v1beta4` only) and
  `get_external_etcd_patch`. Other versions raise
  `UnsupportedConfigVersionError`.
- `kinder.loadbalancer` – `config(ConfigData(...))` renders the HAProxy
  configuration for the control plane load balancer, listing backend servers
  sorted by name.
- `kinder.k8sversion` – `parse_semantic(text)` returns a `Version`; invalid
  text raises `VersionError`.
- `kinder.sources` – `get_source_type(src)` classifies a source as a
  `SourceType`; `resolve_label(src)` turns `release/…` or `ci/…` labels into a
  `v`-prefixed version; `http_get` and `copy_from_uri` download with
  exponential backoff. Errors raise `SourceError`.
- `kinder.extractor` – `Extractor(src, dst, ...)` fetches the kubelet,
  kubectl and kubeadm binaries and the control plane image tarballs from a
  release build, a CI build, an HTTP repository or a local folder or file.
  Keyword options select a subset (`only_kubeadm`, `only_kubelet`,
  `only_kubernetes_binaries`, `only_kubernetes_images`), rename files
  (`name_prefix`, `name_override`), control the `version` file
  (`version_file`) and save into a `v<version>` folder (`version_folder`).
  `extract()` returns a mapping of file name to destination path and raises
  `ExtractError` on failure.

## Examples

```python
from kinder.extractor import Extractor

paths = Extractor("release/stable", "/tmp/bits", only_kubeadm=True).extract()
print(paths["kubeadm"])
```

```python
from kinder.kubeadm.patch import build
from kinder.kubeadm.patches import get_external_etcd_patch, get_remove_token_patch

patched = build(
    kubeadm_config,
    [get_external_etcd_patch("v1beta4", "10.0.0.2")],
    [get_remove_token_patch("v1beta4")],
)
```

## What this package does not do

It is a library only: there is no command-line tool. It does not create,
start or delete node containers, does not start or stop the container runtime
inside nodes, does not build or commit node images and does not run kubeadm
init, join or upgrade. It does not generate a kubeadm configuration from
scratch; it only patches one that is given to it.
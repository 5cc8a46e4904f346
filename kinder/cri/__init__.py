"""Docker image archives, docker CLI helpers and containerd configuration."""
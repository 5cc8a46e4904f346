"""Patching of kubeadm configuration documents and ready-made patches."""
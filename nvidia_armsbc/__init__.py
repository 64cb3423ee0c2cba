"""NVIDIA open kernel module packages for ARM single-board computers.

Builds DKMS (.deb) and akmod (.rpm) packages of NVIDIA's open GPU kernel
modules with the armsbc DMA cache coherency patches applied.
"""

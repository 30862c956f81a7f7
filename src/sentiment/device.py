"""
Device Manager

Handles device selection for training and prediction.

This module provides:
- CUDA detection with fallback to CPU
- CPU thread/MKL-DNN setup when no accelerator is available
- Device statistics for run reports
"""

import sys
import torch


class DeviceManager:
    """
    Manages device selection (CUDA or CPU).

    Attributes:
        device: PyTorch device object
        device_type: 'cuda' or 'cpu'
        is_available: Whether hardware acceleration is in use
    """

    def __init__(self, prefer_cuda: bool = True, verbose: bool = True):
        """
        Initialize device manager.

        Args:
            prefer_cuda: Use CUDA when it is available
            verbose: Print device information to stderr
        """
        self.device = None
        self.device_type = None
        self.is_available = False

        self._detect_device(prefer_cuda, verbose)

    def _optimize_cpu(self):
        """Enable CPU optimizations for training."""
        if torch.backends.mkldnn.is_available():
            torch.backends.mkldnn.enabled = True

    def _detect_device(self, prefer_cuda: bool, verbose: bool):
        if prefer_cuda and torch.cuda.is_available():
            self.device = torch.device('cuda')
            self.device_type = 'cuda'
            self.is_available = True
            if verbose:
                print(f"[GPU] CUDA device detected: {torch.cuda.get_device_name(0)}",
                      file=sys.stderr)
            return

        self.device = torch.device('cpu')
        self.device_type = 'cpu'
        self.is_available = False
        self._optimize_cpu()

        if verbose:
            print(f"[CPU] Using CPU with {torch.get_num_threads()} threads", file=sys.stderr)

    def get_device_stats(self) -> dict:
        stats = {
            'device_type': self.device_type,
            'device': str(self.device),
            'hardware_acceleration': self.is_available,
        }

        if self.device_type == 'cuda':
            stats['memory_allocated'] = torch.cuda.memory_allocated() / 1024**2  # MB
            stats['device_name'] = torch.cuda.get_device_name(0)

        return stats

    def __repr__(self):
        return f"DeviceManager(device={self.device}, type={self.device_type}, " \
               f"hardware_acceleration={self.is_available})"

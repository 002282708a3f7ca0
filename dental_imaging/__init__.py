"""
Dental Imaging Backend - CBCT Reconstruction and DICOM Export

This package provides the volumetric reconstruction engine used by the dental
clinic application: assembling slice stacks into voxel volumes, deriving
panoramic and multi-planar projections, radiometric display transforms and
Secondary Capture DICOM export.
"""

__version__ = "1.0.0"
__author__ = "Dental Imaging Team"

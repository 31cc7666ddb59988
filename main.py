"""
photo2jpg
Batch conversion of images to JPEG with per-file progress and size savings.
"""

from photo2jpg.app import main


if __name__ == '__main__':
    main()

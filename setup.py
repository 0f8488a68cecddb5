import re

from setuptools import setup


with open("couchdocs.py", "r", encoding="utf-8") as infile:
    version = re.search(r'^__version__ = "([^"]+)"', infile.read(),
                        re.MULTILINE).group(1)

setup(name="CouchDocs",
      version=version,
      description="CouchDB document and view client in a single module.",
      long_description=open("README.md", "r", encoding="utf-8").read(),
      long_description_content_type="text/markdown",
      license="MIT",
      python_requires=">= 3.7",
      py_modules=["couchdocs"],
      install_requires=[
          "requests>=2",
      ],
      extras_require={
          "test": ["pytest"],
      },
      entry_points={
          "console_scripts": ["couchdocs=couchdocs:main"]
      },
      classifiers=[
          "License :: OSI Approved :: MIT License",
          "Intended Audience :: Developers",
          "Natural Language :: English",
          "Development Status :: 3 - Alpha",
          "Programming Language :: Python :: 3 :: Only",
          "Programming Language :: Python :: 3.7",
          "Operating System :: OS Independent",
          "Environment :: Console",
          "Topic :: Database :: Front-Ends",
          "Topic :: Software Development :: Libraries :: Python Modules"
      ],
)

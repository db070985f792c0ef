from setuptools import setup
from os import path


# this is ugly, but appears to be standard practice:
# https://stackoverflow.com/questions/17583443/what-is-the-correct-way-to-share-package-version-with-setup-py-and-the-package/17626524#17626524
def extract_version(filename: str):
    with open(filename) as f:
        lines = f.readlines()
    version_comment = '# version line; WARNING: do not remove or change this line or comment'
    for line in lines:
        if version_comment in line:
            idx = line.index(version_comment)
            line_prefix = line[:idx]
            parts = [part.strip() for part in line_prefix.split('=')]
            version_str = parts[-1].replace('"', '').replace("'", '').strip()
            return version_str
    raise AssertionError(f'could not find version in {filename}')


version = extract_version('ligo/__version__.py')
print(f'ligo version = {version}')

with open("requirements.txt") as fp:
    install_requires = fp.read().strip().split("\n")

# read the contents of your README file
this_directory = path.abspath(path.dirname(__file__))
with open(path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(name='ligo',
      packages=['ligo'],
      version=version,
      license='MIT',
      description="ligo designs sets of Golden Gate assembly overhangs with high ligation fidelity, "
                  "using measured pairwise ligation frequencies of T4 DNA ligase.",
      long_description=long_description,
      long_description_content_type='text/markdown; variant=GFM',
      python_requires='>=3.7',
      install_requires=install_requires,
      include_package_data=True,
      )

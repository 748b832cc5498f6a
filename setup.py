from setuptools import setup

# Read version from porttray/VERSION
with open('porttray/VERSION') as f:
    VERSION = f.read().strip()

setup(
    name='porttray',
    version=VERSION,
    description='System tray menu of local HTTP servers listening on TCP ports',
    long_description=open('README.md', encoding='utf-8').read(),
    long_description_content_type='text/markdown',
    license='MIT',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Topic :: System :: Networking :: Monitoring',
    ],
    packages=['porttray'],
    package_data={'porttray': ['VERSION']},
    python_requires='>=3.7',
    install_requires=[
        'psutil',
        'requests',
        'pyyaml',
        'pystray',
        'Pillow',
        'pyperclip',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'porttray=porttray:cli_entry',
        ],
    },
)

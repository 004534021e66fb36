from setuptools import setup

# avoid importing powergpo here, it needs the install_requires
about = {}
with open('powergpo/_version.py') as fh:
	exec(fh.read(), about)
__version__ = about['__version__']

setup(
	name='powergpo',
	version=__version__,
	description='Python based Group Policy maintenance helpers',
	author='Aniq Fakhrul',
	author_email='aniqfakhrull@gmail.com',
	maintainer='Aniq Fakhrul',
	maintainer_email='aniqfakhrull@gmail.com',
	url='https://github.com/aniqfakhrul/powerview.py',
	long_description=open('README.md').read(),
	long_description_content_type='text/markdown',
	packages=[
		'powergpo',
		'powergpo.utils',
		'powergpo.modules',
		'powergpo.lib'
	],
	license='MIT',
	install_requires=[
		'impacket',
		'ldap3',
		'dnspython',
		'gnureadline; platform_system=="Linux"',
		'validators',
		'chardet',
		'tabulate',
	],
	extras_require={
		'kerberos': ['gssapi'],
	},
	classifiers=[
		'Intended Audience :: Information Technology',
		'License :: OSI Approved :: MIT License',
		'Programming Language :: Python :: 3.8',
		'Programming Language :: Python :: 3.9',
		'Programming Language :: Python :: 3.10',
		'Programming Language :: Python :: 3.11',
		'Programming Language :: Python :: 3.12',
	],
	entry_points= {
		'console_scripts': ['powergpo=powergpo:main']
	}
)

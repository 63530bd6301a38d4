"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from nwcloudctl.commands import ToggleContext
from nwcloudctl.filestore import FileStore
from nwcloudctl.project import ProjectLocator
from nwcloudctl.templates import TemplateEngine

POM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<project xmlns="http://maven.apache.org/POM/4.0.0" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" xsi:schemaLocation="http://maven.apache.org/POM/4.0.0 http://maven.apache.org/maven-v4_0_0.xsd">
    <modelVersion>4.0.0</modelVersion>
    <groupId>com.example</groupId>
    <artifactId>petclinic</artifactId>
    <packaging>war</packaging>
    <version>0.1.0.BUILD-SNAPSHOT</version>
    <build>
        <plugins>
            <plugin>
                <groupId>org.apache.maven.plugins</groupId>
                <artifactId>maven-compiler-plugin</artifactId>
                <version>2.5.1</version>
            </plugin>
            <plugin>
                <artifactId>maven-war-plugin</artifactId>
                <version>2.2</version>
            </plugin>
        </plugins>
    </build>
</project>
"""

WEB_XML = """<?xml version="1.0" encoding="UTF-8" standalone="no"?>
<web-app xmlns="http://java.sun.com/xml/ns/javaee" version="3.0">
    <display-name>petclinic</display-name>
    <servlet>
        <servlet-name>petclinic</servlet-name>
        <servlet-class>org.springframework.web.servlet.DispatcherServlet</servlet-class>
    </servlet>
</web-app>
"""

SPRING_XML = """<?xml version="1.0" encoding="UTF-8" standalone="no"?>
<beans xmlns="http://www.springframework.org/schema/beans" xmlns:jee="http://www.springframework.org/schema/jee" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
    <context-placeholder location="classpath*:META-INF/spring/*.properties"/>
    <bean class="org.apache.commons.dbcp.BasicDataSource" destroy-method="close" id="dataSource">
        <property name="driverClassName" value="org.hsqldb.jdbcDriver"/>
    </bean>
    <bean class="org.springframework.orm.jpa.JpaTransactionManager" id="transactionManager"/>
</beans>
"""

PERSISTENCE_XML = """<?xml version="1.0" encoding="UTF-8" standalone="no"?>
<persistence xmlns="http://java.sun.com/xml/ns/persistence" version="2.0">
    <persistence-unit name="persistenceUnit" transaction-type="RESOURCE_LOCAL">
        <provider>org.hibernate.ejb.HibernatePersistence</provider>
    </persistence-unit>
</persistence>
"""


def write_project(root: Path, *, jpa: bool = True) -> Path:
    """Write a minimal Maven web application below *root* and return it."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "pom.xml").write_text(POM_XML, encoding="utf-8")
    if jpa:
        web = root / "src/main/webapp/WEB-INF/web.xml"
        spring = root / "src/main/resources/META-INF/spring/applicationContext.xml"
        persistence = root / "src/main/resources/META-INF/persistence.xml"
        for path, content in ((web, WEB_XML), (spring, SPRING_XML), (persistence, PERSISTENCE_XML)):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
    return root


def snapshot(root: Path) -> dict[str, bytes]:
    """Return the bytes of every file below *root*, keyed by relative path."""
    return {
        str(path.relative_to(root)): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project with a build descriptor and all JPA descriptors."""
    return write_project(tmp_path / "project")


@pytest.fixture
def toggle_context(project: Path) -> ToggleContext:
    """A toggle context bound to :func:`project` using bundled templates."""
    return ToggleContext(
        locator=ProjectLocator(project),
        files=FileStore(),
        templates=TemplateEngine.with_overrides(None),
    )
